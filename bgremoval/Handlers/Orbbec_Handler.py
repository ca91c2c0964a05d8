"""
Orbbec Handler - paired color/depth acquisition through pyorbbecsdk.

Requests RGB888 color and Y16 depth at the configured size and rate, falls
back to the sensor's default profile when the request is not offered, and
aligns depth to color in software. Every SDK failure is reported as a
DeviceError.
"""
import time
from typing import Optional

from bgremoval.core.events import FramePair, PixelFormat, RawFrame, StreamKind
from bgremoval.utils.constants import (
    DEFAULT_DEPTH_BIT_DEPTH, DEFAULT_FPS, DEFAULT_HEIGHT, DEFAULT_WIDTH,
)
from bgremoval.utils.failures import DeviceError
from bgremoval.utils.logger import Logger

try:
    from pyorbbecsdk import Config, OBAlignMode, OBFormat, OBSensorType, Pipeline
    ORBBEC_AVAILABLE = True
except ImportError:
    ORBBEC_AVAILABLE = False


def frame_bit_depth(frame, fallback: int) -> int:
    """
    Significant bits per sample as reported by the frame itself.

    Older SDK builds have no per-frame bit size and some sensors report 0;
    both use *fallback*.
    """
    reader = getattr(frame, 'get_pixel_available_bit_size', None)
    bits = int(reader()) if reader is not None else 0
    return bits if 1 <= bits <= 16 else fallback


def frame_to_raw(frame, kind: StreamKind, bit_depth: int) -> RawFrame:
    """
    Copy an SDK video frame into an immutable RawFrame.

    *bit_depth* is used for depth and infrared frames that do not report
    their own bit size.
    """
    fmt = PixelFormat.from_name(str(frame.get_format()))
    return RawFrame(
        data=bytes(frame.get_data()),
        kind=kind,
        fmt=fmt,
        width=int(frame.get_width()),
        height=int(frame.get_height()),
        bit_depth=frame_bit_depth(frame, bit_depth) if kind is not StreamKind.COLOR else 8,
        timestamp=float(frame.get_system_timestamp()),
        device_timestamp=float(frame.get_timestamp()),
    )


class OrbbecDeviceHandler:
    """DeviceService backed by an Orbbec depth camera (Femto, Astra, Gemini)."""

    def __init__(self, config: dict):
        """
        Args:
            config: Camera-specific configuration subset
        """
        self.config = config
        self.logger = Logger("OrbbecDeviceHandler")
        self.pipeline = None
        self.width = int(config.get('width', DEFAULT_WIDTH))
        self.height = int(config.get('height', DEFAULT_HEIGHT))
        self.fps = int(config.get('fps', DEFAULT_FPS))
        self.depth_bit_depth = int(config.get('depth_bit_depth', DEFAULT_DEPTH_BIT_DEPTH))
        self.align = str(config.get('align_mode', 'software')).lower()

        if not ORBBEC_AVAILABLE:
            self.logger.error("pyorbbecsdk not available. Install with: pip install bgremoval-node[orbbec]")

    def start(self) -> bool:
        """
        Negotiate color/depth profiles and start streaming.

        Raises:
            DeviceError: the SDK rejected the configuration.
        """
        if not ORBBEC_AVAILABLE:
            self.logger.error("Cannot start: pyorbbecsdk not installed")
            return False

        if self.pipeline is not None:
            return True

        pipeline = self._call("Pipeline", "", Pipeline)
        ob_config = Config()

        color_profile = self._pick_profile(pipeline, OBSensorType.COLOR_SENSOR, OBFormat.RGB)
        depth_profile = self._pick_profile(pipeline, OBSensorType.DEPTH_SENSOR, OBFormat.Y16)
        ob_config.enable_stream(color_profile)
        ob_config.enable_stream(depth_profile)

        if self.align == 'software':
            ob_config.set_align_mode(OBAlignMode.SW_MODE)
        elif self.align == 'hardware':
            ob_config.set_align_mode(OBAlignMode.HW_MODE)

        self._call("Pipeline.start", f"align={self.align}", pipeline.start, ob_config)
        self.pipeline = pipeline
        self.width = int(color_profile.get_width())
        self.height = int(color_profile.get_height())
        self.logger.info(
            f"Orbbec streaming color {color_profile.get_format()} {self.width}x{self.height}, "
            f"depth {depth_profile.get_format()} "
            f"{depth_profile.get_width()}x{depth_profile.get_height()} @ {self.fps}fps"
        )
        return True

    def wait_for_pair(self, timeout_ms: int) -> Optional[FramePair]:
        """Block up to *timeout_ms* for a frame set holding both color and depth."""
        if self.pipeline is None:
            time.sleep(timeout_ms / 1000.0)
            return None

        frame_set = self._call(
            "Pipeline.wait_for_frames", f"timeout_ms={timeout_ms}",
            self.pipeline.wait_for_frames, timeout_ms,
        )
        if frame_set is None:
            return None

        color = frame_set.get_color_frame()
        depth = frame_set.get_depth_frame()
        if color is None or depth is None:
            return None

        return FramePair(
            color=frame_to_raw(color, StreamKind.COLOR, 8),
            depth=frame_to_raw(depth, StreamKind.DEPTH, self.depth_bit_depth),
        )

    def stop(self) -> None:
        if self.pipeline is None:
            return
        try:
            self.pipeline.stop()
        except Exception as e:
            self.logger.warning(f"Error during pipeline stop: {e}")
        self.pipeline = None
        self.logger.info("Orbbec pipeline stopped")

    def _pick_profile(self, pipeline, sensor_type, fmt):
        """Requested profile, or the sensor's default when it is not offered."""
        profiles = self._call(
            "Pipeline.get_stream_profile_list", str(sensor_type),
            pipeline.get_stream_profile_list, sensor_type,
        )
        try:
            return profiles.get_video_stream_profile(self.width, self.height, fmt, self.fps)
        except Exception as e:
            self.logger.warning(f"{sensor_type}: {self.width}x{self.height} {fmt} unavailable ({e}), using default")
        return self._call(
            "StreamProfileList.get_default_video_stream_profile", str(sensor_type),
            profiles.get_default_video_stream_profile,
        )

    @staticmethod
    def _call(name: str, arguments: str, func, *args):
        try:
            return func(*args)
        except Exception as e:
            raise DeviceError(name=name, arguments=arguments, message=str(e),
                              category=type(e).__name__) from e

"""Video Input Handler - replays recorded video as a color/depth device.

Implements the DeviceService protocol so the node can run without a sensor
(the --video flag). The color stream is the video itself, packed as RGB888.
The depth stream comes from a grayscale depth video when one is given, or
from the color frame's luma otherwise, stored as Y16 at the configured bit
depth so the decoder's scaling maps it back to the recorded gray levels.
"""
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from bgremoval.core.events import FramePair, PixelFormat, RawFrame, StreamKind
from bgremoval.utils.constants import DEFAULT_DEPTH_BIT_DEPTH, DEFAULT_FPS, DEPTH_BASELINE_BITS
from bgremoval.utils.logger import Logger


class VideoInputHandler:
    """Handles video file input for testing purposes.

    Implements the DeviceService protocol:
        start() -> bool
        wait_for_pair(timeout_ms) -> Optional[FramePair]
        stop() -> None
    """

    def __init__(self, video_path: str, depth_path: Optional[str] = None, config: Optional[dict] = None):
        """
        Args:
            video_path: Path to the color video file.
            depth_path: Optional path to a grayscale depth video of the same size.
            config: Camera configuration subset (fps, depth_bit_depth, loop_video).
        """
        config = config or {}
        self.video_path = video_path
        self.depth_path = depth_path
        self.fps = max(int(config.get('fps', DEFAULT_FPS)), 1)
        self.depth_bit_depth = int(config.get('depth_bit_depth', DEFAULT_DEPTH_BIT_DEPTH))
        self.loop = bool(config.get('loop_video', True))
        self.logger = Logger("VideoInputHandler")
        self.cap: Optional[cv2.VideoCapture] = None
        self.depth_cap: Optional[cv2.VideoCapture] = None
        self.finished = False
        self._next_frame_at = 0.0
        self.logger.info(f"VideoInputHandler initialized with video: {video_path}")

    # ── DeviceService protocol ────────────────────────────────────────

    def start(self) -> bool:
        """Open the video file(s) for reading."""
        self.cap = self._open(self.video_path)
        if self.cap is None:
            return False

        if self.depth_path:
            self.depth_cap = self._open(self.depth_path)
            if self.depth_cap is None:
                self.cap.release()
                self.cap = None
                return False

        self.finished = False
        self._next_frame_at = time.monotonic()
        return True

    def wait_for_pair(self, timeout_ms: int) -> Optional[FramePair]:
        """Return the next recorded pair, paced to the configured frame rate."""
        if self.cap is None or self.finished:
            time.sleep(timeout_ms / 1000.0)
            return None

        delay = self._next_frame_at - time.monotonic()
        if delay > timeout_ms / 1000.0:
            time.sleep(timeout_ms / 1000.0)
            return None
        if delay > 0:
            time.sleep(delay)
        self._next_frame_at = max(self._next_frame_at, time.monotonic() - 1.0) + 1.0 / self.fps

        color = self._read(self.cap)
        depth = self._read(self.depth_cap) if self.depth_cap is not None else color
        if color is None or depth is None:
            return self._rewind()

        return self.make_pair(color, depth)

    def stop(self) -> None:
        """Release the video capture resources."""
        for cap in (self.cap, self.depth_cap):
            if cap is not None:
                cap.release()
        if self.cap is not None:
            self.logger.info("Video capture released")
        self.cap = None
        self.depth_cap = None

    # ── Internal ─────────────────────────────────────────────────────

    def make_pair(self, color_bgr: np.ndarray, depth_source: np.ndarray) -> FramePair:
        """Pack a BGR color image and a gray (or BGR) depth image as raw frames."""
        height, width = color_bgr.shape[:2]
        now_ms = time.time() * 1000.0
        device_ms = self.cap.get(cv2.CAP_PROP_POS_MSEC) if self.cap is not None else 0.0

        rgb = cv2.cvtColor(color_bgr, cv2.COLOR_BGR2RGB)
        gray = depth_source if depth_source.ndim == 2 else cv2.cvtColor(depth_source, cv2.COLOR_BGR2GRAY)
        if gray.shape != (height, width):
            gray = cv2.resize(gray, (width, height), interpolation=cv2.INTER_NEAREST)
        samples = gray.astype(np.uint16) << max(self.depth_bit_depth - DEPTH_BASELINE_BITS, 0)

        color = RawFrame(
            data=rgb.tobytes(), kind=StreamKind.COLOR, fmt=PixelFormat.RGB888,
            width=width, height=height, bit_depth=8,
            timestamp=now_ms, device_timestamp=device_ms,
        )
        depth = RawFrame(
            data=samples.tobytes(), kind=StreamKind.DEPTH, fmt=PixelFormat.Y16,
            width=width, height=height, bit_depth=max(self.depth_bit_depth, DEPTH_BASELINE_BITS),
            timestamp=now_ms, device_timestamp=device_ms,
        )
        return FramePair(color=color, depth=depth)

    def _open(self, path: str) -> Optional[cv2.VideoCapture]:
        if not Path(path).exists():
            self.logger.error(f"Video file not found: {path}")
            return None

        cap = cv2.VideoCapture(path)
        if not cap.isOpened():
            self.logger.error(f"Failed to open video file: {path}")
            return None

        self.logger.info(f"Video file opened: {path}")
        return cap

    @staticmethod
    def _read(cap: Optional[cv2.VideoCapture]) -> Optional[np.ndarray]:
        if cap is None:
            return None
        ret, frame = cap.read()
        return frame if ret else None

    def _rewind(self) -> None:
        if not self.loop:
            self.logger.info("Video playback finished")
            self.finished = True
            return None

        self.logger.info("Video ended — looping back to start")
        for cap in (self.cap, self.depth_cap):
            if cap is not None:
                cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        return None

"""
Pixel Decoder — turns one RawFrame into a NormalizedImage.

Every output is a (height, width, 3) uint8 BGR array, the layout OpenCV
displays directly. Depth and infrared samples are 16-bit; they are scaled
into 0-255 using the bit depth the frame declares, so 10-bit and 12-bit
depth configurations both fill the display range.
"""
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import cv2
import numpy as np

from bgremoval.core.events import NormalizedImage, PixelFormat, RawFrame, StreamKind
from bgremoval.utils.constants import (
    DEPTH_BASELINE_BITS,
    INFRARED_BASELINE_BITS,
    MIN_FRAME_BYTES,
)
from bgremoval.utils.failures import DecodeError, UnsupportedFormatError
from bgremoval.utils.logger import Logger

BASELINE_BITS = {
    StreamKind.DEPTH: DEPTH_BASELINE_BITS,
    StreamKind.INFRARED: INFRARED_BASELINE_BITS,
}

# Formats a depth/IR sensor may use as a plain 16-bit container
SIXTEEN_BIT_CONTAINERS = (PixelFormat.Y16, PixelFormat.YUYV, PixelFormat.YUY2)


def depth_scale(kind: StreamKind, bit_depth: int) -> float:
    """
    Scale factor mapping a *bit_depth* sample of *kind* into 8 bits.

    ``1 / 2**(bit_depth - baseline)`` with baseline 10 for depth and 8 for
    infrared: 10-bit depth → 1.0, 12-bit depth → 0.25, 8-bit IR → 1.0.
    """
    if kind not in BASELINE_BITS:
        raise UnsupportedFormatError(f"No bit-depth scaling for {kind.value} streams")
    if not 1 <= bit_depth <= 16:
        raise DecodeError(f"Invalid declared bit depth: {bit_depth}")
    return 1.0 / (2 ** (bit_depth - BASELINE_BITS[kind]))


def _require_bytes(frame: RawFrame, needed: int) -> None:
    if frame.size < needed:
        raise DecodeError(
            f"{frame.kind.value}/{frame.fmt.value} frame {frame.width}x{frame.height} "
            f"needs {needed} bytes, got {frame.size}"
        )


def _decode_mjpg(frame: RawFrame) -> NormalizedImage:
    encoded = np.frombuffer(frame.data, dtype=np.uint8)
    image = cv2.imdecode(encoded, cv2.IMREAD_COLOR)
    if image is None:
        raise DecodeError(f"Corrupt MJPG frame ({frame.size} bytes)")
    return image


def _decode_semi_planar(code: int) -> Callable[[RawFrame], NormalizedImage]:
    def convert(frame: RawFrame) -> NormalizedImage:
        if frame.height % 2 or frame.width % 2:
            raise DecodeError(f"YUV 4:2:0 needs even dimensions, got {frame.width}x{frame.height}")
        rows = frame.height * 3 // 2
        _require_bytes(frame, rows * frame.width)
        raw = np.frombuffer(frame.data, dtype=np.uint8, count=rows * frame.width)
        return cv2.cvtColor(raw.reshape(rows, frame.width), code)
    return convert


def _decode_packed_yuv(frame: RawFrame) -> NormalizedImage:
    needed = frame.height * frame.width * 2
    _require_bytes(frame, needed)
    raw = np.frombuffer(frame.data, dtype=np.uint8, count=needed)
    return cv2.cvtColor(raw.reshape(frame.height, frame.width, 2), cv2.COLOR_YUV2BGR_YUY2)


def _decode_rgb(frame: RawFrame) -> NormalizedImage:
    needed = frame.height * frame.width * 3
    _require_bytes(frame, needed)
    raw = np.frombuffer(frame.data, dtype=np.uint8, count=needed)
    return cv2.cvtColor(raw.reshape(frame.height, frame.width, 3), cv2.COLOR_RGB2BGR)


def _decode_sixteen_bit(frame: RawFrame) -> NormalizedImage:
    scale = depth_scale(frame.kind, frame.bit_depth)
    count = frame.height * frame.width
    _require_bytes(frame, count * 2)
    raw = np.frombuffer(frame.data, dtype=np.uint16, count=count).reshape(frame.height, frame.width)
    gray = cv2.convertScaleAbs(raw, alpha=scale)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


COLOR_CONVERTERS: Dict[PixelFormat, Callable[[RawFrame], NormalizedImage]] = {
    PixelFormat.MJPG: _decode_mjpg,
    PixelFormat.NV21: _decode_semi_planar(cv2.COLOR_YUV2BGR_NV21),
    PixelFormat.NV12: _decode_semi_planar(cv2.COLOR_YUV2BGR_NV12),
    PixelFormat.YUYV: _decode_packed_yuv,
    PixelFormat.YUY2: _decode_packed_yuv,
    PixelFormat.RGB888: _decode_rgb,
}


class PixelDecoder:
    """Stateless RawFrame → NormalizedImage converter."""

    def __init__(self, min_frame_bytes: int = MIN_FRAME_BYTES):
        self.min_frame_bytes = min_frame_bytes
        self.logger = Logger("PixelDecoder")

    def converter_for(self, kind: StreamKind, fmt: PixelFormat) -> Callable[[RawFrame], NormalizedImage]:
        """Look up the conversion for a (stream kind, pixel format) pair."""
        if kind is StreamKind.COLOR:
            converter = COLOR_CONVERTERS.get(fmt)
        elif fmt in SIXTEEN_BIT_CONTAINERS:
            converter = _decode_sixteen_bit
        else:
            converter = None

        if converter is None:
            raise UnsupportedFormatError(f"Unsupported {kind.value} format: {fmt.value}")
        return converter

    def decode(self, frame: RawFrame) -> Optional[NormalizedImage]:
        """
        Decode a single frame.

        Returns:
            The normalized image, or None when the buffer is too small to hold
            any data (not an error: the frame is simply skipped).

        Raises:
            UnsupportedFormatError: no conversion exists for the frame's kind/format.
            DecodeError: the geometry is empty, the buffer does not match it,
                or the conversion itself failed.
        """
        if frame is None or frame.size < self.min_frame_bytes:
            return None
        if frame.width <= 0 or frame.height <= 0:
            raise DecodeError(
                f"{frame.kind.value}/{frame.fmt.value} frame has no area: {frame.width}x{frame.height}"
            )

        converter = self.converter_for(frame.kind, frame.fmt)
        try:
            image = converter(frame)
        except (cv2.error, ValueError) as e:
            raise DecodeError(f"{frame.kind.value}/{frame.fmt.value} {frame.width}x{frame.height}: {e}") from e
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        return image

    def decode_frames(
        self,
        frames: Iterable[RawFrame],
        on_error: Optional[Callable[[DecodeError], None]] = None,
    ) -> List[Tuple[RawFrame, NormalizedImage]]:
        """
        Decode several frames, skipping any that produce nothing.

        A frame that fails is reported (to *on_error* if given, else the log)
        and dropped; the rest still decode.
        """
        decoded = []
        for frame in frames:
            try:
                image = self.decode(frame)
            except DecodeError as e:
                if on_error is not None:
                    on_error(e)
                else:
                    self.logger.warning(f"Skipping frame: {e.message}")
                continue
            if image is None:
                self.logger.debug("Skipping frame with no data")
                continue
            decoded.append((frame, image))
        return decoded

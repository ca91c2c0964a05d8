"""
Protocol definitions (interfaces) for the background removal node.

The device, the detectors and the window are collaborators the core never
looks inside. Each is a single-capability contract so tests can plug in
deterministic stand-ins.
"""
from typing import Protocol, Optional, List, Sequence, Tuple, runtime_checkable

import numpy as np

from bgremoval.core.events import FramePair

Point = Tuple[int, int]


@runtime_checkable
class DeviceService(Protocol):
    """Paired color/depth acquisition (depth camera SDK, recording replay, ...)."""

    def start(self) -> bool:
        """Open the device and start streaming. Returns True on success."""
        ...

    def wait_for_pair(self, timeout_ms: int) -> Optional[FramePair]:
        """
        Block up to *timeout_ms* for the next synchronized capture.

        Returns:
            A complete FramePair, or None if nothing complete arrived in time.

        Raises:
            DeviceError: on any structured device failure (fatal).
        """
        ...

    def stop(self) -> None:
        """Stop streaming and release the device."""
        ...


@runtime_checkable
class FaceDetector(Protocol):
    """Finds faces in a color image."""

    def detect_faces(self, image: np.ndarray) -> List[Point]:
        """Return the (x, y) pixel centers of detected faces."""
        ...


@runtime_checkable
class ObjectTracker(Protocol):
    """Segments people/objects in a depth image."""

    def track_objects(self, depth_image: np.ndarray, points: Sequence[Point]) -> np.ndarray:
        """
        Args:
            depth_image: Normalized depth image (h, w, 3) uint8.
            points: Seed points, typically face centers from a FaceDetector.

        Returns:
            Single-channel uint8 mask of shape (h, w), non-zero on foreground.
        """
        ...


@runtime_checkable
class DisplaySink(Protocol):
    """A window that shows images and reports key presses."""

    def show(self, title: str, image: np.ndarray) -> None:
        ...

    def poll_key(self) -> int:
        """Return the key pressed since the last poll, or -1."""
        ...

    def is_open(self) -> bool:
        ...

    def close(self) -> None:
        ...

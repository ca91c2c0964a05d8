"""
Shared fixtures for the background removal tests.

Provides:
- synthetic RawFrame / FramePair builders
- deterministic stand-ins for the device, detector, tracker and display
"""
import threading
import time
from typing import List, Optional

import numpy as np
import pytest

from bgremoval.core.events import FramePair, PixelFormat, RawFrame, StreamKind
from bgremoval.utils.config import Config
from bgremoval.utils.constants import KEY_ESC, KEY_NONE

WIDTH = 64
HEIGHT = 48


def color_frame(bgr=(30, 20, 10), width=WIDTH, height=HEIGHT, image=None) -> RawFrame:
    """RGB888 color frame, filled with one BGR color unless *image* (BGR) is given."""
    if image is None:
        image = np.zeros((height, width, 3), dtype=np.uint8)
        image[:] = bgr
    rgb = image[..., ::-1]
    return RawFrame(
        data=np.ascontiguousarray(rgb).tobytes(),
        kind=StreamKind.COLOR,
        fmt=PixelFormat.RGB888,
        width=image.shape[1],
        height=image.shape[0],
        bit_depth=8,
        timestamp=1000.0,
        device_timestamp=500.0,
    )


def depth_frame(value=400, bit_depth=12, width=WIDTH, height=HEIGHT, samples=None,
                kind=StreamKind.DEPTH, fmt=PixelFormat.Y16) -> RawFrame:
    """16-bit depth (or IR) frame, constant *value* unless *samples* is given."""
    if samples is None:
        samples = np.full((height, width), value, dtype=np.uint16)
    return RawFrame(
        data=samples.astype(np.uint16).tobytes(),
        kind=kind,
        fmt=fmt,
        width=samples.shape[1],
        height=samples.shape[0],
        bit_depth=bit_depth,
        timestamp=1000.0,
        device_timestamp=500.0,
    )


def frame_pair(sequence=0, **color_kwargs) -> FramePair:
    return FramePair(color=color_frame(**color_kwargs), depth=depth_frame(), sequence=sequence)


class FakeDevice:
    """DeviceService serving a fixed list of pairs, then nothing."""

    def __init__(self, pairs: Optional[List[FramePair]] = None, error: Optional[Exception] = None,
                 start_ok: bool = True):
        self.pairs = list(pairs or [])
        self.error = error
        self.start_ok = start_ok
        self.started = False
        self.stopped = False
        self.served = 0
        self.drained = threading.Event()

    def start(self) -> bool:
        self.started = True
        return self.start_ok

    def wait_for_pair(self, timeout_ms: int) -> Optional[FramePair]:
        if self.pairs:
            self.served += 1
            return self.pairs.pop(0)
        if self.error is not None:
            raise self.error
        self.drained.set()
        time.sleep(timeout_ms / 1000.0)
        return None

    def stop(self) -> None:
        self.stopped = True


class StubDetector:
    """FaceDetector returning fixed points and remembering its inputs."""

    def __init__(self, points=None):
        self.points = list(points or [])
        self.calls = []

    def detect_faces(self, image):
        self.calls.append(image.copy())
        return list(self.points)


class StubTracker:
    """ObjectTracker marking the left half of the image as foreground."""

    def __init__(self):
        self.calls = []

    def track_objects(self, depth_image, points):
        self.calls.append((depth_image.copy(), list(points)))
        mask = np.zeros(depth_image.shape[:2], dtype=np.uint8)
        mask[:, : depth_image.shape[1] // 2] = 255
        return mask


class FakeDisplay:
    """DisplaySink recording shown images; returns scripted keys."""

    def __init__(self, keys=None, quit_after_shows: Optional[int] = None, max_polls: int = 400,
                 poll_delay: float = 0.0):
        self.keys = list(keys or [])
        self.quit_after_shows = quit_after_shows
        self.max_polls = max_polls
        self.poll_delay = poll_delay
        self.shown = []
        self.polls = 0
        self.open = True
        self.closed = False

    def show(self, title, image):
        self.shown.append((title, image.copy()))

    def poll_key(self) -> int:
        self.polls += 1
        if self.poll_delay:
            time.sleep(self.poll_delay)
        if self.keys:
            return self.keys.pop(0)
        if self.quit_after_shows is not None and len(self.shown) >= self.quit_after_shows:
            return KEY_ESC
        if self.polls >= self.max_polls:
            return KEY_ESC
        return KEY_NONE

    def is_open(self) -> bool:
        return self.open

    def close(self):
        self.closed = True
        self.open = False


@pytest.fixture
def test_config(tmp_path):
    """Config built from an empty directory with file logging off."""
    cfg = Config(configs_dir=str(tmp_path))
    cfg.set('logging.file', False)
    cfg.set('camera.width', WIDTH)
    cfg.set('camera.height', HEIGHT)
    cfg.set('camera.wait_timeout_ms', 10)
    return cfg

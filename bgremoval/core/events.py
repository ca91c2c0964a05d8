"""
Typed messages for the background removal pipeline.

Pipeline data (RawFrame, FramePair, RenderBundle) flows producer → mailbox →
consumer. Control-plane events are low-frequency dataclasses published on
the EventBus.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence
import time

import numpy as np

# Decoded, display-ready image: (height, width, 3) uint8 in BGR order.
NormalizedImage = np.ndarray


class StreamKind(Enum):
    COLOR = "color"
    DEPTH = "depth"
    INFRARED = "infrared"


class PixelFormat(Enum):
    MJPG = "MJPG"
    NV21 = "NV21"
    NV12 = "NV12"
    YUYV = "YUYV"
    YUY2 = "YUY2"
    RGB888 = "RGB888"
    Y16 = "Y16"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_name(cls, name: str) -> "PixelFormat":
        """Map a device format name (``OBFormat.RGB``, ``"yuyv"``, ...) to a PixelFormat."""
        key = str(name).rsplit('.', 1)[-1].upper()
        aliases = {"RGB": "RGB888", "MJPEG": "MJPG"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.UNKNOWN


class LayoutPolicy(Enum):
    SINGLE = "single"
    ROW = "row"
    COLUMN = "column"
    GRID = "grid"
    OVERLAY = "overlay"


# ─── Pipeline Messages ────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawFrame:
    """One undecoded sensor sample plus its format metadata."""
    data: bytes
    kind: StreamKind
    fmt: PixelFormat
    width: int
    height: int
    bit_depth: int = 8
    timestamp: float = field(default_factory=lambda: time.time() * 1000.0)
    device_timestamp: float = 0.0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FramePair:
    """Color and depth frames from one synchronized capture instant."""
    color: RawFrame
    depth: RawFrame
    sequence: int = 0

    def __post_init__(self):
        if self.color is None or self.depth is None:
            raise ValueError("FramePair requires both a color and a depth frame")

    @property
    def frames(self) -> tuple:
        return (self.color, self.depth)


@dataclass(frozen=True)
class RenderBundle:
    """Images to compose in one tick, plus how to arrange them."""
    images: Sequence[NormalizedImage]
    policy: LayoutPolicy = LayoutPolicy.ROW
    alpha: float = 0.5


# ─── Event Bus Events (control plane) ────────────────────────────────────

class ControlEvent:
    """Base class of everything published on the EventBus."""


@dataclass
class DiagnosticsToggled(ControlEvent):
    """Published when the frame info overlay is switched on or off."""
    enabled: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class DeviceFailed(ControlEvent):
    """Published by the acquisition thread when the device service fails."""
    error: Optional[Exception] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ShutdownRequested(ControlEvent):
    """Published to signal a graceful shutdown of all components."""
    reason: str = "user"
    timestamp: float = field(default_factory=time.time)

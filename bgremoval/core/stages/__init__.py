"""
Pipeline stages for the background removal node.

Two contexts share only the FrameMailbox and the quit signal:

    AcquisitionStage (thread) → [FrameMailbox] → RenderStage (main thread)

The acquisition thread never waits on the render loop: a pair that arrives
while the loop is detaching the slot is dropped, a pair that arrives before
the previous one was read replaces it.
"""
from .acquisition import AcquisitionStage
from .render import RenderStage

__all__ = ["AcquisitionStage", "RenderStage"]

"""
Frame Mailbox — single-slot, freshest-wins handoff from the acquisition
thread to the render loop.

Not a queue: at most one FramePair is ever resident. A publish replaces any
unread pair; a publish that finds the consumer mid-detach is dropped instead
of waiting. Neither side ever blocks on the other beyond the detach itself.
"""
import threading
from typing import Dict, Optional

from bgremoval.core.events import FramePair


class FrameMailbox:
    """
    Usage:
        mailbox = FrameMailbox()
        mailbox.try_publish(pair)        # producer thread
        pair = mailbox.take_if_present() # render loop
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._slot: Optional[FramePair] = None
        self._stats = {
            "published": 0,
            "dropped": 0,
            "overwritten": 0,
            "taken": 0,
        }

    def try_publish(self, pair: FramePair) -> bool:
        """
        Overwrite the slot with *pair* unless the consumer holds the lock.

        Returns:
            True if the pair is now in the slot, False if it was dropped.
        """
        if not self._lock.acquire(blocking=False):
            # Dropped pairs are counted without the lock; the figure is advisory.
            self._stats["dropped"] += 1
            return False
        try:
            if self._slot is not None:
                self._stats["overwritten"] += 1
            self._slot = pair
            self._stats["published"] += 1
            return True
        finally:
            self._lock.release()

    def take_if_present(self) -> Optional[FramePair]:
        """Detach and return the current pair, leaving the slot empty."""
        with self._lock:
            pair = self._slot
            self._slot = None
            if pair is not None:
                self._stats["taken"] += 1
            return pair

    @property
    def has_pending(self) -> bool:
        """True if an unread pair sits in the slot (advisory, may race)."""
        return self._slot is not None

    def stats(self) -> Dict[str, int]:
        """Snapshot of the counters, read without the lock so producers are never dropped by it."""
        return dict(self._stats)

"""
Frame-rate bookkeeping.

FrameRateTracker keeps a one-second sliding window of arrival times per
stream and reports the average rate. ProcessingTimer measures how long the
per-tick processing takes and turns the running mean into an FPS figure.
"""
import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Hashable, Optional


class FrameRateTracker:
    """Average arrival rate per stream over a sliding window."""

    def __init__(self, window_seconds: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._arrivals: Dict[Hashable, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def record(self, stream: Hashable, timestamp: Optional[float] = None) -> None:
        """Register one frame arrival for *stream* (seconds, defaults to now)."""
        now = self._clock() if timestamp is None else timestamp
        with self._lock:
            arrivals = self._arrivals[stream]
            arrivals.append(now)
            self._trim(arrivals, now)

    def average_fps(self, stream: Hashable) -> int:
        """Frames seen in the last window, scaled to frames per second."""
        with self._lock:
            arrivals = self._arrivals.get(stream)
            if not arrivals:
                return 0
            self._trim(arrivals, arrivals[-1])
            return int(round(len(arrivals) / self.window_seconds))

    def reset(self) -> None:
        with self._lock:
            self._arrivals.clear()

    def _trim(self, arrivals: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while arrivals and arrivals[0] <= cutoff:
            arrivals.popleft()


class ProcessingTimer:
    """Start/stop timer accumulating processing time, like a tick meter."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._started: Optional[float] = None
        self.total_seconds = 0.0
        self.count = 0

    def start(self) -> None:
        self._started = self._clock()

    def stop(self) -> None:
        if self._started is None:
            return
        self.total_seconds += self._clock() - self._started
        self.count += 1
        self._started = None

    def fps(self) -> float:
        """Mean measured intervals per second (0.0 before the first stop)."""
        if self.count == 0 or self.total_seconds <= 0:
            return 0.0
        return self.count / self.total_seconds

    def reset(self) -> None:
        self._started = None
        self.total_seconds = 0.0
        self.count = 0

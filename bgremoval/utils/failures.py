"""
Structured error handling and failure tracking for the background removal node.

Two tiers:
  * DeviceError is unrecoverable. It ends acquisition and terminates the process.
  * Everything else raised inside a render tick (decode, layout) is local:
    it is recorded here, the tick's output is omitted and the loop carries on.
"""
import threading
import time
from typing import Dict, List, Optional

from bgremoval.utils.logger import Logger


class BgRemovalError(Exception):
    """Base class for all background removal exceptions."""
    def __init__(self, message: str, critical: bool = False):
        super().__init__(message)
        self.message = message
        self.critical = critical
        self.timestamp = time.time()


class DeviceError(BgRemovalError):
    """Structured failure reported by the device service.

    Mirrors what depth SDKs report: the failing function name, its
    arguments, the message and an error category.
    """
    def __init__(self, name: str, arguments: str, message: str, category: str = "unknown"):
        super().__init__(message, critical=True)
        self.name = name
        self.arguments = arguments
        self.category = category

    def report(self) -> str:
        return (
            f"Function:{self.name}\n"
            f"Arguments:{self.arguments}\n"
            f"Message:{self.message}\n"
            f"Type:{self.category}"
        )

    def __str__(self) -> str:
        return f"{self.name}({self.arguments}): {self.message} [{self.category}]"


class DecodeError(BgRemovalError):
    """Raised when a raw frame cannot be turned into an image."""
    pass


class UnsupportedFormatError(DecodeError):
    """Raised for a (stream kind, pixel format) pair with no conversion."""
    pass


class LayoutError(BgRemovalError):
    """Raised when images cannot be arranged under the requested layout."""
    pass


class ConfigError(BgRemovalError):
    """Exception raised for configuration-related failures."""
    pass


class FailureManager:
    """Tracks recurring per-tick failures and warns when one keeps happening."""

    def __init__(self, settings: Optional[dict] = None):
        """
        Args:
            settings: Dictionary with 'threshold' and 'window_seconds' (from failures.json)
        """
        self.logger = Logger("FailureManager")

        self.settings = settings or {}
        self.threshold = self.settings.get('threshold', 5)
        self.window_seconds = self.settings.get('window_seconds', 300)

        self.failures: Dict[str, List[float]] = {}
        self.history: List[BgRemovalError] = []
        self._max_history = 100
        self._alerted: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def record_failure(self, error: Exception):
        """
        Record a failure incident (thread-safe).

        Args:
            error: The exception that occurred.
        """
        with self._lock:
            error_type = type(error).__name__
            now = time.time()

            timestamps = self.failures.setdefault(error_type, [])
            timestamps.append(now)
            self._prune(error_type, now)

            if isinstance(error, BgRemovalError):
                self.history.append(error)
                msg = f"Failure detected: {error_type} - {error.message}"
                if error.critical:
                    self.logger.error(f"CRITICAL: {msg}")
                else:
                    self.logger.warning(msg)
            else:
                self.logger.error(f"Unexpected failure: {error_type} - {error}")

            if len(self.history) > self._max_history:
                self.history = self.history[-self._max_history:]

            # One alert per burst; re-armed once the window drains
            exceeded = len(self.failures[error_type]) >= self.threshold
            if exceeded and not self._alerted.get(error_type):
                self.logger.warning(
                    f"Resilience Alert: '{error_type}' exceeded threshold "
                    f"({self.threshold} in {self.window_seconds}s)"
                )
            self._alerted[error_type] = exceeded

    def _prune(self, error_type: str, now: float):
        cutoff = now - self.window_seconds
        self.failures[error_type] = [t for t in self.failures[error_type] if t > cutoff]

    def is_threshold_exceeded(self, error_type: str) -> bool:
        """Check if a specific error type has exceeded the frequency threshold."""
        with self._lock:
            if error_type not in self.failures:
                return False
            self._prune(error_type, time.time())
            return len(self.failures[error_type]) >= self.threshold

    def count(self, error_type: str) -> int:
        """Number of failures of this type inside the current window."""
        with self._lock:
            if error_type not in self.failures:
                return 0
            self._prune(error_type, time.time())
            return len(self.failures[error_type])

    def get_recent_history(self, count: int = 10) -> List[BgRemovalError]:
        """Return the most recent failures."""
        with self._lock:
            return self.history[-count:]

    def clear(self):
        """Reset all tracked failures."""
        with self._lock:
            self.failures = {}
            self.history = []
            self._alerted = {}
        self.logger.info("Failure history cleared.")

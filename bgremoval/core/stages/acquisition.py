"""
Acquisition Stage — waits on the device service and publishes each completed
FramePair to the FrameMailbox.

Runs in its own thread. Waits are bounded so the quit signal is observed
within one timeout. A publish that collides with the render loop's detach
is dropped, never retried: the next capture supersedes it.
"""
import itertools
from dataclasses import replace
from threading import Thread, Event
from typing import Optional

from bgremoval.core.bus import EventBus
from bgremoval.core.events import DeviceFailed
from bgremoval.core.mailbox import FrameMailbox
from bgremoval.core.protocols import DeviceService
from bgremoval.utils.constants import DEFAULT_WAIT_TIMEOUT_MS
from bgremoval.utils.failures import DeviceError
from bgremoval.utils.logger import Logger


class AcquisitionStage(Thread):
    """
    Producer context.

    Pulls FramePairs from any DeviceService and hands them to the mailbox.
    A DeviceError ends the loop; it is kept on ``self.error`` and announced
    with a DeviceFailed event so the render loop can shut the node down.
    """

    def __init__(
        self,
        device: DeviceService,
        mailbox: FrameMailbox,
        quit_event: Event,
        bus: Optional[EventBus] = None,
        wait_timeout_ms: int = DEFAULT_WAIT_TIMEOUT_MS,
    ):
        """
        Args:
            device: Any object implementing the DeviceService protocol.
            mailbox: Single-slot handoff to the render loop.
            quit_event: Shared quit signal, set by the render loop.
            bus: Event bus for DeviceFailed notifications.
            wait_timeout_ms: Upper bound of each blocking wait on the device.
        """
        super().__init__(name="AcquisitionStage", daemon=True)
        self.device = device
        self.mailbox = mailbox
        self.quit_event = quit_event
        self.bus = bus
        self.wait_timeout_ms = max(int(wait_timeout_ms), 1)
        self.error: Optional[DeviceError] = None
        self.pairs_acquired = 0
        self.pairs_dropped = 0
        self._sequence = itertools.count(1)
        self.logger = Logger("AcquisitionStage")

    def run(self) -> None:
        """Main acquisition loop — runs until the quit signal is set."""
        self.logger.info(f"Acquisition stage running ({self.wait_timeout_ms} ms wait)")

        try:
            while not self.quit_event.is_set():
                pair = self.device.wait_for_pair(self.wait_timeout_ms)
                if pair is None:
                    continue

                self.pairs_acquired += 1
                pair = replace(pair, sequence=next(self._sequence))
                if not self.mailbox.try_publish(pair):
                    self.pairs_dropped += 1
        except DeviceError as e:
            self._fail(e)
        except Exception as e:
            # Unstructured failures from a device adapter are just as fatal
            self._fail(DeviceError(
                name="wait_for_pair",
                arguments=f"timeout_ms={self.wait_timeout_ms}",
                message=str(e),
                category=type(e).__name__,
            ))
        finally:
            self.device.stop()
            self.logger.info(
                f"Acquisition stage stopped: {self.pairs_acquired} pair(s) acquired, "
                f"{self.pairs_dropped} dropped on contention"
            )

    def _fail(self, error: DeviceError) -> None:
        self.error = error
        self.logger.error(f"Device failure: {error}")
        if self.bus is not None:
            self.bus.publish(DeviceFailed(error=error))

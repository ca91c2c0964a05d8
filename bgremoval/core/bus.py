"""
In-process event bus for control-plane messages.

Carries the rare events that cross component boundaries: diagnostics
toggles, device failures and shutdown requests. Frames never travel through
here; they go through the FrameMailbox.

Dispatch follows the event's class hierarchy, so a handler subscribed to
ControlEvent sees every control event. The lock is reentrant: a signal
handler may publish while the interrupted thread is inside the bus.
"""
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Type

from bgremoval.utils.logger import Logger

Handler = Callable[[Any], None]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, '__qualname__', repr(handler))


class EventBus:
    """
    Publish/subscribe keyed by event class.

    Usage:
        bus = EventBus()
        bus.subscribe(ShutdownRequested, node.on_shutdown)
        bus.publish(ShutdownRequested(reason="signal"))
    """

    def __init__(self):
        self._subscribers: Dict[Type, List[Handler]] = defaultdict(list)
        self._lock = threading.RLock()
        self.logger = Logger("EventBus")

    def subscribe(self, event_type: Type, handler: Handler) -> Callable[[], None]:
        """
        Register *handler* for *event_type* and its subclasses.

        Subscribing the same handler twice has no effect.

        Returns:
            A callable that removes this subscription.
        """
        with self._lock:
            handlers = self._subscribers[event_type]
            if handler not in handlers:
                handlers.append(handler)
                self.logger.debug(f"{_handler_name(handler)} subscribed to {event_type.__name__}")
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Type, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Any) -> int:
        """
        Deliver *event* synchronously on the caller's thread, most specific
        subscriptions first.

        A failing handler is logged and does not stop the others.

        Returns:
            Number of handlers that ran without raising.
        """
        with self._lock:
            handlers = [
                handler
                for event_type in type(event).__mro__
                for handler in self._subscribers.get(event_type, ())
            ]

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"{_handler_name(handler)} failed on {type(event).__name__}: {e}")
            else:
                delivered += 1
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def subscriber_count(self, event_type: Type) -> int:
        """Handlers subscribed to exactly *event_type* (not its bases)."""
        with self._lock:
            return len(self._subscribers.get(event_type, ()))

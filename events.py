"""Push timer state changes to any number of observers."""

import logging
import threading
from typing import Callable, List

from models import TimerStatus

logger = logging.getLogger(__name__)

Subscriber = Callable[[TimerStatus], None]


class EventNotifier:
    """Observer list for timer status changes.

    Delivery is best effort: subscribers that miss an event resync through
    TimerEngine.status(). A subscriber that raises is logged and skipped.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Subscriber):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, status: TimerStatus):
        """Send status to every current subscriber."""
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(status)
            except Exception:
                logger.exception(f"Timer status subscriber {callback!r} failed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

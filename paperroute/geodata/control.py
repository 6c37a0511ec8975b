# paperroute/geodata/control.py
"""
Progress reporting and cancellation primitives shared by every prefetch.
"""
import logging
import threading
from typing import Callable, List

from .data_models import PrefetchProgress

ProgressCallback = Callable[[PrefetchProgress], None]


class ProgressChannel:
    """
    Publishes prefetch progress to any number of subscribers.

    Delivery is synchronous and in publish order: `publish()` returns only
    after every subscriber has seen the event.
    """

    def __init__(self):
        self._subscribers: List[ProgressCallback] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Registers a callback and returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, progress: PrefetchProgress) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(progress)
            except Exception as e:
                # A faulty listener must not stop the prefetch it is watching
                logging.error(f"Progress subscriber {callback!r} raised: {e}", exc_info=True)


class CancellationToken:
    """A one-shot flag a caller can set to stop a running prefetch."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleeps up to `timeout` seconds; returns True early if cancelled."""
        return self._event.wait(timeout)

"""
Listener lists for receive-side notifications.

Events fire on the receive thread while the host may subscribe or unsubscribe
from its own thread, so the listener set is swapped as an immutable tuple.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventHandler:
    """Named event with thread-safe subscription."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._listeners: tuple[Listener, ...] = ()

    def add_listener(self, listener: Listener) -> Callable[[], bool]:
        """Subscribe `listener`. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners += (listener,)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Listener) -> bool:
        """Unsubscribe `listener`. Returns False if it was not subscribed."""
        with self._lock:
            if listener not in self._listeners:
                return False
            index = self._listeners.index(listener)
            self._listeners = self._listeners[:index] + self._listeners[index + 1 :]
        return True

    def invoke(self, *args: Any) -> int:
        """
        Call every listener with `args`.

        Returns:
            Number of listeners that raised. A failing listener is logged and
            the remaining ones still run.
        """
        failures = 0
        for listener in self._listeners:
            try:
                listener(*args)
            except Exception:
                failures += 1
                logger.exception(f"{self.name} listener {listener!r} failed")
        return failures

    def __len__(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        with self._lock:
            self._listeners = ()

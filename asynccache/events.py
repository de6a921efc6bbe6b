"""
Listener registry for backend errors and lifecycle events.

An "error" with nobody listening is logged instead of raised, and a
failing listener never reaches the code that emitted the event.
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventHub:
    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self._listeners[event]

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of `event` in registration order. Returns False if there were none."""
        listeners = list(self._listeners.get(event, ()))
        if not listeners:
            if event == "error":
                logger.warning(f"[cache] unhandled error event: {args[0] if args else None}")
            return False
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception(f"[cache] {event!r} listener failed")
        return True

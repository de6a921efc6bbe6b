"""
Single-flight registry of pending lookups.

A key is present only while exactly one resolver is in flight for it.
Its list holds the channel of every lookup waiting on that resolver, in
arrival order, and is never empty.
"""

from typing import Any, Hashable

from .channel import ResultChannel


class Coalescer:
    def __init__(self):
        self._in_flight: dict[Hashable, list[ResultChannel]] = {}

    def join(self, key: Hashable, channel: ResultChannel) -> bool:
        """
        Queue `channel` on the resolution of `key`, starting one if none is running.

        Returns:
            True for the originator, which must now invoke the resolver;
            False when the channel was coalesced onto a running resolution.
        """
        waiters = self._in_flight.get(key)
        if waiters is not None:
            waiters.append(channel)
            return False
        self._in_flight[key] = [channel]
        return True

    def release(self, key: Hashable) -> list[ResultChannel]:
        """Remove `key` and return its waiters, oldest first."""
        return self._in_flight.pop(key, [])

    def is_pending(self, key: Any) -> bool:
        return key in self._in_flight

    def waiter_count(self, key: Hashable) -> int:
        return len(self._in_flight.get(key, ()))

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

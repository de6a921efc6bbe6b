"""
In-process backend, used when AsyncCache is given none.

LRU-bounded with a TTL per entry, on top of cachetools.TLRUCache.
A ttl of zero or less stores nothing and drops any previous entry.
Operations are synchronous.
"""

import math
import time
from typing import Any, Callable, Hashable, NamedTuple, Optional

from cachetools import TLRUCache

from .config import CacheConfig
from .types import MISSING


class _Entry(NamedTuple):
    value: Any
    ttl: Optional[float]


def _time_to_use(_key: Hashable, entry: _Entry, now: float) -> float:
    if entry.ttl is None:
        return math.inf
    return now + entry.ttl


class MemoryCache:
    def __init__(
        self,
        max_size: int = CacheConfig.MEMORY_MAX_SIZE,
        default_ttl: Optional[float] = CacheConfig.DEFAULT_TTL,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._cache: TLRUCache = TLRUCache(maxsize=max_size, ttu=_time_to_use, timer=timer)
        self._default_ttl = default_ttl

    @property
    def max_size(self) -> int:
        return int(self._cache.maxsize)

    def get(self, key: Hashable) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return MISSING
        return entry.value

    def has(self, key: Hashable) -> bool:
        return key in self._cache

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self._default_ttl
        if ttl is not None and ttl <= 0:
            self._cache.pop(key, None)
            return
        self._cache[key] = _Entry(value, ttl)

    def delete(self, key: Hashable) -> None:
        self._cache.pop(key, None)

    def reset(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)

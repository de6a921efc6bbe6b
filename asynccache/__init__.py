"""
asynccache - single-flight cache lookups over pluggable backends.

Concurrent lookups of the same missing key share one resolver call; every
caller receives that call's outcome, in arrival order, on a later loop
iteration.

Example Usage:
    >>> from asynccache import AsyncCache
    >>>
    >>> cache = AsyncCache()
    >>>
    >>> def resolver(settle):
    ...     settle(None, {"name": "Ada"}, 60)
    >>>
    >>> user = await cache.lookup("user:1", resolver)
    >>> user = await cache.get_or_fetch("user:1", fetch_user, ttl=60)
"""

from .coalescer import Coalescer
from .config import CacheConfig
from .errors import BackendError, CacheError, ResolverError, ResolverTimeoutError
from .events import EventHub
from .manager import AsyncCache
from .memory_cache import MemoryCache
from .redis_cache import RedisCache, make_key
from .types import MISSING, CacheBackend, Outcome

__version__ = "0.1.0"

__all__ = [
    # Coordinator
    "AsyncCache",
    "Coalescer",
    "EventHub",
    # Backends
    "CacheBackend",
    "MemoryCache",
    "RedisCache",
    "make_key",
    # Types
    "MISSING",
    "Outcome",
    # Errors
    "CacheError",
    "BackendError",
    "ResolverError",
    "ResolverTimeoutError",
    # Configuration
    "CacheConfig",
]

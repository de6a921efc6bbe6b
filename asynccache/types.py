"""
Core types shared by the coordinator and its backends.

MISSING is the backend's "no entry" marker. It is distinct from every
storable value, None included.
"""

import enum
from typing import Any, Callable, Optional, Protocol


class _Missing:
    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Outcome(str, enum.Enum):
    HIT = "hit"
    RESOLVED = "resolved"
    FAILED = "failed"


# settle(error=None, value=None, ttl=None)
Settle = Callable[..., None]
Resolver = Callable[[Settle], Any]
Callback = Callable[[Optional[BaseException], Any], Any]


class CacheBackend(Protocol):
    """
    Key/value capability the coordinator sits on.

    Each method may return its result directly or return an awaitable.
    `get` returns MISSING for an absent key. Backends may additionally
    expose `on(event, listener)`, `connect()` and `close()`.
    """

    def get(self, key: Any) -> Any: ...

    def has(self, key: Any) -> Any: ...

    def set(self, key: Any, value: Any, ttl: Optional[float] = None) -> Any: ...

    def delete(self, key: Any) -> Any: ...

    def reset(self) -> Any: ...

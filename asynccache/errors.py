"""Exception hierarchy for asynccache."""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base exception for all asynccache errors."""


class BackendError(CacheError):
    """A backend operation failed.

    Raised by pass-through operations; inside a lookup it is only reported
    to "error" observers.
    """

    def __init__(self, op: str, key: Any, cause: BaseException) -> None:
        target = "" if key is None else f" for {key!r}"
        super().__init__(f"backend {op} failed{target}: {cause}")
        self.op = op
        self.key = key
        self.cause = cause


class ResolverError(CacheError):
    """A resolver failed without raising an exception of its own."""

    def __init__(self, message: str, *, key: Any = None) -> None:
        super().__init__(message)
        self.key = key


class ResolverTimeoutError(ResolverError):
    """A resolver did not settle within the resolve timeout."""

"""
AsyncCache: single-flight lookup coordinator over a pluggable backend.

Provides:
- lookup(): cache-aside where one resolver runs per missing key and its
  outcome is fanned out to every waiter in arrival order
- get_or_fetch(): lookup() for coroutine fetchers
- get/has/set/delete/reset: pass-through to the backend

Every operation returns a future, or takes callback(error, result) instead.
Results are never delivered inside the call that requested them.
"""

import asyncio
import functools
import inspect
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Hashable, Optional

from . import telemetry
from .channel import ResultChannel, dispatch, maybe_await
from .coalescer import Coalescer
from .config import CacheConfig
from .errors import BackendError, ResolverError, ResolverTimeoutError
from .events import EventHub, Listener
from .memory_cache import MemoryCache
from .types import MISSING, Callback, CacheBackend, Outcome, Resolver

logger = logging.getLogger(__name__)

# Backend events re-emitted on the cache's own hub.
RELAYED_EVENTS = ("error", "connect", "close")


class _Settler:
    """The single-use settle(error, value, ttl) handed to a resolver."""

    def __init__(self, cache: "AsyncCache", key: Hashable):
        self._cache = cache
        self._key = key
        self._timer: Optional[asyncio.TimerHandle] = None
        self.settled = False

    def arm(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(timeout, self._expire, timeout)

    def _expire(self, timeout: float) -> None:
        self(ResolverTimeoutError(f"resolver for {self._key!r} did not settle within {timeout}s", key=self._key))

    def __call__(self, error: Any = None, value: Any = None, ttl: Optional[float] = None) -> None:
        if self.settled:
            logger.debug(f"[cache] ignoring repeated settle for {self._key!r}")
            return
        self.settled = True
        if self._timer is not None:
            self._timer.cancel()
        self._cache._settle(self._key, error, value, ttl)


class AsyncCache:
    def __init__(self, backend: Optional[CacheBackend] = None, resolve_timeout: Optional[float] = None):
        self.backend = backend if backend is not None else MemoryCache()
        self.events = EventHub()
        self.coalescer = Coalescer()
        if resolve_timeout is None:
            resolve_timeout = CacheConfig.RESOLVE_TIMEOUT
        self._resolve_timeout = resolve_timeout
        self._tasks: set[asyncio.Future] = set()
        self._counts: Counter = Counter()

        on = getattr(self.backend, "on", None)
        if callable(on):
            for event in RELAYED_EVENTS:
                on(event, functools.partial(self.events.emit, event))

    # ── Observers ────────────────────────────────────────────

    def on(self, event: str, listener: Listener) -> Listener:
        return self.events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self.events.off(event, listener)

    # ── Lifecycle ────────────────────────────────────────────

    async def connect(self) -> None:
        """Connect the backend if it needs connecting. Non-fatal, degrades gracefully."""
        connect = getattr(self.backend, "connect", None)
        if connect is None:
            return
        try:
            await maybe_await(connect())
        except Exception as e:
            logger.warning(f"[cache] backend unavailable: {e}")
            self._report(BackendError("connect", None, e))

    async def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if close is not None:
            await maybe_await(close())

    def stats(self) -> dict[str, int]:
        return {
            "hits": self._counts[Outcome.HIT.value],
            "misses": self._counts["miss"],
            "coalesced": self._counts["coalesced"],
            "resolved": self._counts[Outcome.RESOLVED.value],
            "failed": self._counts[Outcome.FAILED.value],
            "backend_errors": self._counts["backend_error"],
            "in_flight": self.coalescer.in_flight_count,
        }

    # ── Pass-through ─────────────────────────────────────────

    def get(self, key: Hashable, callback: Optional[Callback] = None):
        """Read `key` straight from the backend; an absent key yields MISSING."""
        return self._forward("get", callback, key)

    def has(self, key: Hashable, callback: Optional[Callback] = None):
        return self._forward("has", callback, key)

    def set(self, key: Hashable, value: Any, ttl: Any = None, callback: Optional[Callback] = None):
        # set(key, value, callback) is accepted too.
        if callback is None and callable(ttl):
            ttl, callback = None, ttl
        return self._forward("set", callback, key, value, ttl)

    def delete(self, key: Hashable, callback: Optional[Callback] = None):
        return self._forward("delete", callback, key)

    def reset(self, callback: Optional[Callback] = None):
        return self._forward("reset", callback)

    def _forward(self, op: str, callback: Optional[Callback], *args: Any):
        task = self._spawn(self._call_backend(op, *args))
        return dispatch(task, callback)

    async def _call_backend(self, op: str, *args: Any) -> Any:
        key = args[0] if args else None
        with telemetry.stage(f"backend.{op}", key):
            try:
                return await maybe_await(getattr(self.backend, op)(*args))
            except Exception as e:
                raise BackendError(op, key, e) from e

    # ── Single-flight lookup ─────────────────────────────────

    def lookup(self, key: Hashable, resolver: Resolver, callback: Optional[Callback] = None):
        """
        Return the cached value for `key`, resolving it on a miss.

        On a miss `resolver(settle)` is called, at most once per key at a
        time, and must eventually call settle(error, value, ttl). Lookups for
        the same key that arrive meanwhile, including from inside the
        resolver, wait for that same settle. A value is written to the
        backend with `ttl` before being delivered; an error is delivered
        without caching anything.
        """
        return self._start_lookup(key, resolver, callback, fresh=False)

    def get_or_fetch(
        self,
        key: Hashable,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        fresh: bool = False,
        callback: Optional[Callback] = None,
    ):
        """
        Cache-aside for coroutine fetchers.

        `fetch_fn()` runs on a miss and its result is cached with `ttl`.
        fresh=True skips the cache read but still coalesces and writes back.
        """

        async def resolver(settle):
            settle(None, await fetch_fn(), ttl)

        return self._start_lookup(key, resolver, callback, fresh=fresh)

    def _start_lookup(self, key: Hashable, resolver: Resolver, callback: Optional[Callback], fresh: bool):
        hash(key)  # unhashable keys fail here rather than inside the task
        channel = ResultChannel()
        self._spawn(self._lookup(key, resolver, channel, fresh))
        return dispatch(channel.future, callback)

    async def _lookup(self, key: Hashable, resolver: Resolver, channel: ResultChannel, fresh: bool) -> None:
        try:
            exists, value = (False, MISSING) if fresh else await self._read_for_lookup(key)
        except Exception as e:
            channel.deliver(e)
            return

        if exists:
            self._counts[Outcome.HIT.value] += 1
            channel.deliver(None, value)
            telemetry.log_event("lookup_hit", key=key)
            return

        # No suspension point from here until the resolver has been called.
        if not self.coalescer.join(key, channel):
            self._counts["coalesced"] += 1
            telemetry.log_event("lookup_coalesced", key=key, waiters=self.coalescer.waiter_count(key))
            return

        self._counts["miss"] += 1
        self._invoke(key, resolver)
        telemetry.log_event("lookup_miss", key=key)

    async def _read_for_lookup(self, key: Hashable) -> tuple[bool, Any]:
        """Read `key` for a lookup. Backend failures are reported and count as a miss."""
        read_failed = False
        try:
            value = await self._call_backend("get", key)
        except BackendError as e:
            self._report(e)
            value, read_failed = MISSING, True
        if value is not MISSING:
            return True, value

        try:
            exists = bool(await self._call_backend("has", key))
        except BackendError as e:
            self._report(e)
            return False, MISSING
        if not exists or read_failed:
            return False, MISSING
        # Present, but not representable through get().
        return True, None

    def _invoke(self, key: Hashable, resolver: Resolver) -> None:
        settle = _Settler(self, key)
        if self._resolve_timeout and self._resolve_timeout > 0:
            settle.arm(self._resolve_timeout)
        try:
            result = resolver(settle)
        except Exception as e:
            if settle.settled:
                logger.exception(f"[cache] resolver for {key!r} raised after settling")
                return
            settle(e)
            return
        if inspect.isawaitable(result):
            task = self._spawn(result)
            task.add_done_callback(functools.partial(self._resolver_done, key, settle))

    @staticmethod
    def _resolver_done(key: Hashable, settle: _Settler, task: asyncio.Future) -> None:
        if task.cancelled():
            settle(ResolverError(f"resolver for {key!r} was cancelled", key=key))
            return
        error = task.exception()
        if error is None:
            return
        if settle.settled:
            logger.error(f"[cache] resolver for {key!r} raised after settling", exc_info=error)
            return
        settle(error)

    def _settle(self, key: Hashable, error: Any, value: Any, ttl: Optional[float]) -> None:
        if error is not None:
            if not isinstance(error, BaseException):
                error = ResolverError(str(error), key=key)
            self._fan_out(key, Outcome.FAILED, error, None)
            return
        self._spawn(self._store_and_fan_out(key, value, ttl))

    async def _store_and_fan_out(self, key: Hashable, value: Any, ttl: Optional[float]) -> None:
        try:
            await self._call_backend("set", key, value, ttl)
        except BackendError as e:
            self._report(e)
        self._fan_out(key, Outcome.RESOLVED, None, value)

    def _fan_out(self, key: Hashable, outcome: Outcome, error: Optional[BaseException], value: Any) -> None:
        waiters = self.coalescer.release(key)
        self._counts[outcome.value] += 1
        for channel in waiters:
            channel.deliver(error, value)
        telemetry.log_event("lookup_settled", key=key, outcome=outcome.value, waiters=len(waiters))

    # ── Plumbing ─────────────────────────────────────────────

    def _report(self, error: BackendError) -> None:
        self._counts["backend_error"] += 1
        logger.debug(f"[cache] {error}")
        self.events.emit("error", error)

    def _spawn(self, awaitable: Awaitable[Any]) -> asyncio.Future:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

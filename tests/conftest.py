"""Pytest fixtures and test doubles for asynccache tests."""

import asyncio
import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from asynccache import MISSING, AsyncCache, EventHub

# =============================================================================
# Test Doubles
# =============================================================================


class RecordingBackend:
    """Dict-backed backend that records every call.

    Operations named in `fail` raise RuntimeError("<op> failed"). With
    asynchronous=True every operation returns a coroutine that yields to
    the loop once before answering.
    """

    def __init__(self, data=None, *, fail=(), asynchronous=False):
        self.data = dict(data or {})
        self.fail = set(fail)
        self.asynchronous = asynchronous
        self.calls = []

    def _respond(self, op, args, result):
        self.calls.append((op, *args))
        if self.asynchronous:
            return self._later(op, result)
        if op in self.fail:
            raise RuntimeError(f"{op} failed")
        return result

    async def _later(self, op, result):
        await asyncio.sleep(0)
        if op in self.fail:
            raise RuntimeError(f"{op} failed")
        return result

    def ops(self, name):
        return [call for call in self.calls if call[0] == name]

    def get(self, key):
        return self._respond("get", (key,), self.data.get(key, MISSING))

    def has(self, key):
        return self._respond("has", (key,), key in self.data)

    def set(self, key, value, ttl=None):
        if "set" not in self.fail:
            self.data[key] = value
        return self._respond("set", (key, value, ttl), None)

    def delete(self, key):
        if "delete" not in self.fail:
            self.data.pop(key, None)
        return self._respond("delete", (key,), None)

    def reset(self):
        if "reset" not in self.fail:
            self.data.clear()
        return self._respond("reset", (), None)


class EmittingBackend(RecordingBackend):
    """RecordingBackend that also publishes events."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.hub = EventHub()

    def on(self, event, listener):
        self.hub.on(event, listener)


class FakeRedis:
    """In-memory stand-in for the redis.asyncio client calls RedisCache makes."""

    def __init__(self):
        self.store = {}
        self.px = {}
        self.down = False
        self.closed = False

    async def ping(self):
        if self.down:
            raise RedisConnectionError("connection refused")
        return True

    async def get(self, key):
        return self.store.get(key)

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    async def set(self, key, value, px=None):
        self.store[key] = value
        self.px[key] = px
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def cache(backend):
    return AsyncCache(backend)


@pytest.fixture
def fake_redis():
    return FakeRedis()

"""Tests for the RedisCache backend, against an in-memory fake client."""

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from asynccache import MISSING, AsyncCache, RedisCache, make_key


class TestMakeKey:
    def test_single_part_kept_readable(self):
        assert make_key("asynccache", "user:1") == "asynccache:v1:user:1"

    def test_multiple_parts_hashed(self):
        key = make_key("search", "python", "latest", "20")

        assert key.startswith("search:v1:")
        assert len(key.split(":v1:")[1]) == 16
        assert key == make_key("search", "python", "latest", "20")
        assert key != make_key("search", "python", "top", "20")


class TestRedisCache:
    @pytest.mark.asyncio
    async def test_set_stores_envelope(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)

        await cache.set("user:1", {"name": "Ada"}, 1800)

        raw = fake_redis.store["test:v1:user:1"]
        envelope = orjson.loads(raw)
        assert envelope["data"] == {"name": "Ada"}
        assert "stored_at" in envelope
        assert fake_redis.px["test:v1:user:1"] == 1_800_000

    @pytest.mark.asyncio
    async def test_set_without_ttl_never_expires(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)

        await cache.set("k", "v")

        assert fake_redis.px["test:v1:k"] is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_deletes(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)
        await cache.set("k", "v")

        await cache.set("k", "w", -1)

        assert await cache.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_get_and_has(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)

        assert await cache.get("k") is MISSING
        assert await cache.has("k") is False

        await cache.set("k", None)

        assert await cache.get("k") is None
        assert await cache.has("k") is True

    @pytest.mark.asyncio
    async def test_undecodable_entry_raises(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)
        fake_redis.store["test:v1:k"] = b"not json"

        with pytest.raises(ValueError, match="undecodable"):
            await cache.get("k")

    @pytest.mark.asyncio
    async def test_key_types_kept_apart(self, fake_redis):
        """1, "1" and ("1",) are different keys and get different entries."""
        cache = RedisCache(prefix="test", client=fake_redis)

        await cache.set("1", "str")
        await cache.set(1, "int")
        await cache.set(("1",), "tuple")

        assert await cache.get("1") == "str"
        assert await cache.get(1) == "int"
        assert await cache.get(("1",)) == "tuple"
        assert len(fake_redis.store) == 3

    @pytest.mark.asyncio
    async def test_unencodable_key_rejected(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)

        with pytest.raises(TypeError, match="must be str or JSON-encodable"):
            await cache.get(frozenset())

    @pytest.mark.asyncio
    async def test_reset_only_touches_own_prefix(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)
        fake_redis.store["other:v1:k"] = b"keep"
        for index in range(3):
            await cache.set(f"k{index}", index)
        await cache.set(7, "int key")

        await cache.reset()

        assert list(fake_redis.store) == ["other:v1:k"]

    @pytest.mark.asyncio
    async def test_delete(self, fake_redis):
        cache = RedisCache(prefix="test", client=fake_redis)
        await cache.set("k", "v")

        await cache.delete("k")

        assert await cache.has("k") is False

    @pytest.mark.asyncio
    async def test_not_connected_raises(self):
        cache = RedisCache()

        assert cache.connected is False
        with pytest.raises(RedisConnectionError):
            await cache.get("k")


class TestRedisCacheLifecycle:
    @pytest.mark.asyncio
    async def test_connect_emits_connect(self, fake_redis):
        cache = RedisCache(client=fake_redis)
        events = []
        cache.on("connect", lambda: events.append("connect"))
        cache.on("close", lambda: events.append("close"))

        await cache.connect()
        await cache.close()

        assert events == ["connect", "close"]
        assert fake_redis.closed is True
        assert cache.connected is False

    @pytest.mark.asyncio
    async def test_connect_failure_raises_and_disconnects(self, fake_redis):
        fake_redis.down = True
        cache = RedisCache(client=fake_redis)

        with pytest.raises(RedisConnectionError):
            await cache.connect()

        assert cache.connected is False

    @pytest.mark.asyncio
    async def test_ping_failure_emits_error(self, fake_redis):
        cache = RedisCache(client=fake_redis)
        errors = []
        cache.on("error", errors.append)

        assert await cache.ping() is True
        fake_redis.down = True
        assert await cache.ping() is False

        assert len(errors) == 1
        assert isinstance(errors[0], RedisConnectionError)


class TestAsyncCacheOverRedis:
    @pytest.mark.asyncio
    async def test_lookup_caches_null(self, fake_redis):
        """A resolved None is stored and served as a hit."""
        cache = AsyncCache(RedisCache(client=fake_redis))
        calls = []

        def resolver(settle):
            calls.append(1)
            settle(None, None, 60)

        assert await cache.lookup("k", resolver) is None
        assert await cache.lookup("k", resolver) is None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_events_relayed(self, fake_redis):
        cache = AsyncCache(RedisCache(client=fake_redis))
        events = []
        cache.on("connect", lambda: events.append("connect"))
        cache.on("error", events.append)

        await cache.connect()
        fake_redis.down = True
        await cache.backend.ping()

        assert events[0] == "connect"
        assert isinstance(events[1], RedisConnectionError)

    @pytest.mark.asyncio
    async def test_lookup_while_disconnected_still_resolves(self):
        """Read and write failures are reported; the resolved value is still delivered."""
        cache = AsyncCache(RedisCache())
        errors = []
        cache.on("error", errors.append)

        assert await cache.lookup("k", lambda settle: settle(None, "live")) == "live"
        assert [error.op for error in errors] == ["get", "has", "set"]

    @pytest.mark.asyncio
    async def test_undecodable_entry_reported_and_resolved(self, fake_redis):
        """A corrupt payload is a reported read failure, then resolved and overwritten."""
        cache = AsyncCache(RedisCache(prefix="test", client=fake_redis))
        fake_redis.store["test:v1:k"] = b"not json"
        errors = []
        cache.on("error", errors.append)
        calls = []

        def resolver(settle):
            calls.append(1)
            settle(None, "fresh")

        assert await cache.lookup("k", resolver) == "fresh"
        assert len(calls) == 1
        assert [error.op for error in errors] == ["get"]
        assert isinstance(errors[0].cause, ValueError)
        assert orjson.loads(fake_redis.store["test:v1:k"])["data"] == "fresh"

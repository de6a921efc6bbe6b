"""
Redis backend with envelope format.

All values stored as: {"data": <payload>, "stored_at": <unix_timestamp>}
so a stored null reads back as None while an absent key reads as MISSING.
A payload that cannot be decoded raises ValueError.
"""

import hashlib
import logging
import time
from typing import Any, Optional

import orjson
import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from .config import CacheConfig
from .events import EventHub, Listener
from .types import MISSING

logger = logging.getLogger(__name__)

_RESET_BATCH = 500


def make_key(prefix: str, *parts: Any) -> str:
    """Build a cache key. For variable-length parts, uses sha1 truncated to 16 chars."""
    raw = "|".join(str(p) for p in parts)
    if len(parts) > 1:
        hashed = hashlib.sha1(raw.encode()).hexdigest()[:16]
        return f"{prefix}:v1:{hashed}"
    return f"{prefix}:v1:{raw}"


class RedisCache:
    def __init__(
        self,
        redis_url: str = CacheConfig.REDIS_URL,
        prefix: str = CacheConfig.KEY_PREFIX,
        client: Optional[aioredis.Redis] = None,
    ):
        self._redis: Optional[aioredis.Redis] = client
        self._url = redis_url
        self._prefix = prefix
        self._events = EventHub()

    def on(self, event: str, listener: Listener) -> None:
        self._events.on(event, listener)

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                decode_responses=False,  # we handle bytes via orjson
                socket_connect_timeout=CacheConfig.CONNECT_TIMEOUT,
                socket_timeout=CacheConfig.CONNECT_TIMEOUT,
            )
        # Verify connectivity
        try:
            await self._redis.ping()
        except RedisError:
            await self._redis.aclose()
            self._redis = None
            raise
        logger.info("[cache] Redis connected")
        self._events.emit("connect")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._events.emit("close")

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def ping(self) -> bool:
        """Ping Redis to verify connectivity. A failure is emitted as "error"."""
        if not self._redis:
            return False
        try:
            await self._redis.ping()
        except RedisError as e:
            self._events.emit("error", e)
            return False
        return True

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            raise RedisConnectionError("Redis cache is not connected")
        return self._redis

    def _key(self, key: Any) -> str:
        if isinstance(key, str):
            return make_key(self._prefix, key)
        # Non-string keys live under "v1j:" as JSON so 1, "1" and ("1",) stay distinct.
        try:
            encoded = orjson.dumps(key).decode()
        except TypeError as e:
            raise TypeError(f"Redis cache keys must be str or JSON-encodable, got {type(key).__name__}") from e
        return f"{self._prefix}:v1j:{encoded}"

    async def get(self, key: Any) -> Any:
        raw = await self._client().get(self._key(key))
        if raw is None:
            return MISSING
        try:
            return orjson.loads(raw)["data"]
        except (orjson.JSONDecodeError, KeyError, TypeError) as e:
            raise ValueError(f"undecodable Redis entry for {key!r}") from e

    async def has(self, key: Any) -> bool:
        return bool(await self._client().exists(self._key(key)))

    async def set(self, key: Any, value: Any, ttl: Optional[float] = None) -> None:
        """Store `value` in an envelope. ttl is in seconds; zero or less deletes instead."""
        client = self._client()
        if ttl is not None and ttl <= 0:
            await client.delete(self._key(key))
            return
        envelope = {"data": value, "stored_at": time.time()}
        raw = orjson.dumps(envelope)
        if ttl is None:
            await client.set(self._key(key), raw)
        else:
            await client.set(self._key(key), raw, px=max(1, int(ttl * 1000)))

    async def delete(self, key: Any) -> None:
        await self._client().delete(self._key(key))

    async def reset(self) -> None:
        """Delete every key under this cache's prefix."""
        client = self._client()
        batch = []
        async for key in client.scan_iter(match=f"{self._prefix}:v1*", count=_RESET_BATCH):
            batch.append(key)
            if len(batch) >= _RESET_BATCH:
                await client.delete(*batch)
                batch = []
        if batch:
            await client.delete(*batch)

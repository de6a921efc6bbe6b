import os
from typing import Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_float_or_none(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return float(raw)


class CacheConfig:
    # Startup/connect timeouts (seconds)
    CONNECT_TIMEOUT: float = float(os.getenv("ASYNCCACHE_CONNECT_TIMEOUT", "3"))

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    KEY_PREFIX: str = os.getenv("ASYNCCACHE_KEY_PREFIX", "asynccache")

    # In-process backend
    MEMORY_MAX_SIZE: int = int(os.getenv("ASYNCCACHE_MEMORY_MAX_SIZE", "1000"))

    # TTL applied by MemoryCache when set() gets none (seconds); unset = never expire
    DEFAULT_TTL: Optional[float] = _env_float_or_none("ASYNCCACHE_DEFAULT_TTL")

    # Seconds a resolver may take before its lookup fails; 0 = wait forever
    RESOLVE_TIMEOUT: float = float(os.getenv("ASYNCCACHE_RESOLVE_TIMEOUT", "0"))

    # Per-backend-call timing lines on the telemetry logger
    STAGE_LOGS: bool = _env_bool("ASYNCCACHE_STAGE_LOGS", "false")

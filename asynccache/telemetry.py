"""
Lookup telemetry.

Emits lifecycle events and backend stage timings as orjson lines on this
module's logger at DEBUG. Stage timings are additionally gated by
CacheConfig.STAGE_LOGS (ASYNCCACHE_STAGE_LOGS).
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any

import orjson

from .config import CacheConfig

logger = logging.getLogger(__name__)


def _emit(payload: dict[str, Any]) -> None:
    try:
        line = orjson.dumps(payload, default=repr).decode()
    except TypeError:
        # orjson rejects some values outright, e.g. ints wider than 64 bits
        line = repr(payload)
    logger.debug(line)


def log_event(event: str, **fields: Any) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    _emit({"event": event, **fields})


def add_stage(stage: str, key: Any, ms: float) -> None:
    if not CacheConfig.STAGE_LOGS or not logger.isEnabledFor(logging.DEBUG):
        return
    _emit(
        {
            "event": "stage_timing",
            "stage": stage,
            "key": key,
            "ms": round(ms, 3),
        }
    )


@contextmanager
def stage(name: str, key: Any = None):
    start = time.perf_counter()
    try:
        yield
    finally:
        add_stage(name, key, (time.perf_counter() - start) * 1000.0)

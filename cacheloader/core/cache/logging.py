from __future__ import annotations

import time

from cacheloader.logger import get_logger

from . import stats

logger = get_logger(__name__)


class CacheTimer:
    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0


def log_cache_event(
    *,
    namespace: str,
    cache_event: str,
    key_hash: str | None = None,
    duration_ms: float | None = None,
    detail: str | None = None,
) -> None:
    # Never log raw keys or values here, only key hashes.
    # NOTE: structlog uses `event` as the message positional arg.
    # Never pass `event=` as a kwarg to logger.* calls.
    stats.increment(namespace=namespace, cache_event=cache_event)

    payload: dict[str, object] = {"namespace": namespace, "cache_event": cache_event}
    if key_hash is not None:
        payload["key"] = key_hash
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 3)
    if detail is not None:
        payload["detail"] = detail
    logger.info("cache", **payload)

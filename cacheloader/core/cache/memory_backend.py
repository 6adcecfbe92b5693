from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock

from .types import CacheBackend, CacheEntry


@dataclass(frozen=True, slots=True)
class _Slot:
    entry: CacheEntry
    expires_at_monotonic: float | None


class MemoryCacheBackend(CacheBackend):
    def __init__(
        self,
        *,
        max_entries: int,
        ttl_seconds: int = 0,
        namespace: str | None = None,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._namespace = namespace
        self._lock = Lock()
        self._slots: OrderedDict[str, _Slot] = OrderedDict()

    def get(self, key: str) -> CacheEntry | None:
        now = time.monotonic()
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                return None
            if slot.expires_at_monotonic is not None and slot.expires_at_monotonic <= now:
                self._slots.pop(key, None)
                return None
            self._slots.move_to_end(key, last=True)
            return slot.entry

    def set(self, key: str, entry: CacheEntry) -> None:
        now = time.monotonic()
        expires_at = now + float(self._ttl_seconds) if self._ttl_seconds > 0 else None
        with self._lock:
            self._slots[key] = _Slot(entry=entry, expires_at_monotonic=expires_at)
            self._slots.move_to_end(key, last=True)
            self._evict_expired_locked(now=now)
            self._evict_lru_locked()

    def delete(self, key: str) -> None:
        with self._lock:
            self._slots.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._slots.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def _evict_expired_locked(self, *, now: float) -> None:
        if self._ttl_seconds <= 0:
            return
        # Expired slots can sit anywhere in LRU order; O(n) is bounded by max_entries.
        expired_keys = [
            k
            for k, slot in self._slots.items()
            if slot.expires_at_monotonic is not None and slot.expires_at_monotonic <= now
        ]
        for k in expired_keys:
            self._slots.pop(k, None)

        if expired_keys and self._namespace:
            from cacheloader.core.cache.logging import log_cache_event

            log_cache_event(
                namespace=self._namespace,
                cache_event="evict",
                detail=f"reason=expired count={len(expired_keys)}",
            )

    def _evict_lru_locked(self) -> None:
        evicted = 0
        while len(self._slots) > self._max_entries:
            self._slots.popitem(last=False)
            evicted += 1

        if evicted and self._namespace:
            from cacheloader.core.cache.logging import log_cache_event

            log_cache_event(
                namespace=self._namespace,
                cache_event="evict",
                detail=f"reason=lru count={evicted}",
            )

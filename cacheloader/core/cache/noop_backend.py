from __future__ import annotations

from .types import CacheBackend, CacheEntry


class NoOpCacheBackend(CacheBackend):
    def get(self, key: str) -> CacheEntry | None:
        return None

    def set(self, key: str, entry: CacheEntry) -> None:
        pass

    def delete(self, key: str) -> None:
        pass

    def keys(self) -> list[str]:
        return []

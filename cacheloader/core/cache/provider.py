from __future__ import annotations

from threading import Lock

from cacheloader.config import settings

from .loader import CacheCoalescingLoader
from .memory_backend import MemoryCacheBackend
from .noop_backend import NoOpCacheBackend
from .types import CacheBackend, CachePolicy, FetchFn

_provider_lock = Lock()
_loaders: dict[str, CacheCoalescingLoader] = {}


def get_loader(namespace: str, fetch: FetchFn | None = None) -> CacheCoalescingLoader:
    """Return the process-wide loader for ``namespace``, creating it on first use.

    The first caller must pass the namespace's fetch function; later callers
    may omit it or must pass the same one.
    """
    with _provider_lock:
        existing = _loaders.get(namespace)
        if existing is not None:
            if fetch is not None and existing.fetch is not None and existing.fetch is not fetch:
                raise ValueError(f"loader for namespace {namespace!r} uses another fetch function")
            return existing

        if fetch is None:
            raise ValueError(f"first get_loader call for {namespace!r} needs a fetch function")
        policy = policy_for_namespace(namespace)
        loader = CacheCoalescingLoader(
            _backend_for_policy(policy),
            fetch,
            namespace=namespace,
            default_options=settings.default_load_options(namespace),
            max_failed_entries=policy.max_entries,
        )
        _loaders[namespace] = loader
        return loader


def policy_for_namespace(namespace: str) -> CachePolicy:
    return CachePolicy(
        namespace=namespace,
        max_age_seconds=settings.get_max_age(namespace),
        max_entries=settings.cache_max_entries,
        ttl_seconds=settings.cache_ttl_seconds,
    )


def _backend_for_policy(policy: CachePolicy) -> CacheBackend:
    if not settings.cache_enabled:
        return NoOpCacheBackend()
    return MemoryCacheBackend(
        max_entries=policy.max_entries,
        ttl_seconds=policy.ttl_seconds,
        namespace=policy.namespace,
    )


async def close_loaders() -> None:
    """Cancel in-flight fetches of every registered loader and forget them."""
    with _provider_lock:
        loaders = list(_loaders.values())
        _loaders.clear()
    for loader in loaders:
        await loader.aclose()

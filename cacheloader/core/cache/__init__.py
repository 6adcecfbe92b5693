from .errors import (
    AuthError,
    LoaderClosedError,
    LoaderError,
    MalformedResponseError,
    NetworkError,
    RetriesExhaustedError,
    classify_error,
)
from .keys import canonical_json, fetch_key, hash_bytes, hash_text
from .loader import CacheCoalescingLoader, LoadHandle
from .memory_backend import MemoryCacheBackend
from .noop_backend import NoOpCacheBackend
from .provider import close_loaders, get_loader
from .results import Failed, Fresh, LoadResult, LoadState, Pending, Stale
from .types import (
    CacheBackend,
    CacheEntry,
    CacheNamespace,
    CachePolicy,
    FetchFn,
    FetchKey,
    FetchStatus,
    LoadOptions,
    RetryState,
)

__all__ = [
    "AuthError",
    "CacheBackend",
    "CacheCoalescingLoader",
    "CacheEntry",
    "CacheNamespace",
    "CachePolicy",
    "Failed",
    "FetchFn",
    "FetchKey",
    "FetchStatus",
    "Fresh",
    "LoadHandle",
    "LoadOptions",
    "LoadResult",
    "LoadState",
    "LoaderClosedError",
    "LoaderError",
    "MalformedResponseError",
    "MemoryCacheBackend",
    "NetworkError",
    "NoOpCacheBackend",
    "Pending",
    "RetriesExhaustedError",
    "RetryState",
    "Stale",
    "canonical_json",
    "classify_error",
    "close_loaders",
    "fetch_key",
    "get_loader",
    "hash_bytes",
    "hash_text",
]

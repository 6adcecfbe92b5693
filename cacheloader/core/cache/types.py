from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, TypeAlias

CacheNamespace: TypeAlias = str
FetchKey: TypeAlias = str


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: FetchKey
    value: Any
    stored_at: float

    def age(self, now: float) -> float:
        return now - self.stored_at


class CacheBackend(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


FetchFn: TypeAlias = Callable[[FetchKey], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class CachePolicy:
    namespace: CacheNamespace
    max_age_seconds: float
    max_entries: int
    ttl_seconds: int = 0


@dataclass(frozen=True, slots=True)
class LoadOptions:
    """Per-call loading policy.

    ``max_age`` and ``base_delay`` are seconds. ``max_delay`` caps a single
    backoff sleep; ``None`` leaves the exponential series uncapped.
    """

    max_age: float = 600.0
    force_refresh: bool = False
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    retry_auth_errors: bool = False

    def __post_init__(self) -> None:
        if self.max_age < 0:
            raise ValueError("max_age must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay is not None and self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")


class FetchStatus(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RetryState:
    key: FetchKey
    attempt: int
    next_delay: float

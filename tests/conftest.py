"""Test fixtures and configuration."""

import asyncio
import time
from collections.abc import Callable

import pytest

from cacheloader.core.cache import provider as cache_provider
from cacheloader.core.cache import stats as cache_stats
from cacheloader.core.cache.errors import NetworkError
from cacheloader.core.cache.loader import CacheCoalescingLoader
from cacheloader.core.cache.memory_backend import MemoryCacheBackend
from cacheloader.core.cache.types import LoadOptions


class RecordingFetch:
    """Fetch function double that records calls and can be gated or made to fail."""

    def __init__(self, value=None, *, delay: float = 0.0, error: Exception | None = None):
        self.value = value
        self.delay = delay
        self.error = error
        self.calls: list[str] = []
        self.call_times: list[float] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, key: str):
        self.calls.append(key)
        self.call_times.append(time.monotonic())
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.value):
            return self.value(key)
        return self.value


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture(autouse=True)
def _isolate_cache():
    cache_stats.reset()
    cache_provider._loaders.clear()  # type: ignore[attr-defined]
    yield
    cache_provider._loaders.clear()  # type: ignore[attr-defined]
    cache_stats.reset()


@pytest.fixture
def backend() -> MemoryCacheBackend:
    return MemoryCacheBackend(max_entries=100)


@pytest.fixture
def fast_options() -> LoadOptions:
    return LoadOptions(max_age=300.0, max_retries=3, base_delay=0.01)


@pytest.fixture
def make_loader(backend: MemoryCacheBackend):
    def _make(fetch, **kwargs) -> CacheCoalescingLoader:
        kwargs.setdefault("namespace", "test")
        return CacheCoalescingLoader(backend, fetch, **kwargs)

    return _make


@pytest.fixture
def failing_fetch() -> RecordingFetch:
    return RecordingFetch(error=NetworkError("connection reset"))

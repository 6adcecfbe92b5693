import pytest
from conftest import RecordingFetch

from cacheloader.config import settings
from cacheloader.core.cache import provider as cache_provider
from cacheloader.core.cache.memory_backend import MemoryCacheBackend
from cacheloader.core.cache.noop_backend import NoOpCacheBackend
from cacheloader.core.cache.results import Fresh, Pending


def test_get_loader_returns_same_instance_per_namespace() -> None:
    fetch = RecordingFetch("v")

    first = cache_provider.get_loader("profile", fetch)
    second = cache_provider.get_loader("profile")

    assert first is second
    assert first.namespace == "profile"
    assert first.default_options.max_age == settings.get_max_age("profile")


def test_get_loader_rejects_different_fetch() -> None:
    cache_provider.get_loader("profile", RecordingFetch("a"))

    with pytest.raises(ValueError):
        cache_provider.get_loader("profile", RecordingFetch("b"))


def test_policy_for_namespace() -> None:
    policy = cache_provider.policy_for_namespace("ads")

    assert policy.namespace == "ads"
    assert policy.max_age_seconds == 1800.0
    assert policy.max_entries == settings.cache_max_entries


def test_backend_follows_cache_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "cache_enabled", True)
    enabled = cache_provider.get_loader("a", RecordingFetch("v"))
    monkeypatch.setattr(settings, "cache_enabled", False)
    disabled = cache_provider.get_loader("b", RecordingFetch("v"))

    assert isinstance(enabled._backend, MemoryCacheBackend)  # type: ignore[attr-defined]
    assert isinstance(disabled._backend, NoOpCacheBackend)  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_disabled_cache_always_fetches(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "cache_enabled", False)
    fetch = RecordingFetch("v")
    loader = cache_provider.get_loader("nocache", fetch)

    first = loader.load("k")
    assert isinstance(await first.wait(), Fresh)
    second = loader.load("k")
    assert isinstance(second.result, Pending)
    await second.wait()

    assert len(fetch.calls) == 2


@pytest.mark.asyncio
async def test_close_loaders_forgets_registry() -> None:
    cache_provider.get_loader("profile", RecordingFetch("v"))

    await cache_provider.close_loaders()

    assert cache_provider._loaders == {}  # type: ignore[attr-defined]


def test_first_get_loader_call_needs_fetch() -> None:
    with pytest.raises(ValueError):
        cache_provider.get_loader("profile")

    assert cache_provider._loaders == {}  # type: ignore[attr-defined]


def test_provider_bounds_terminal_failures_like_the_store() -> None:
    loader = cache_provider.get_loader("profile", RecordingFetch("v"))

    assert loader._max_failed_entries == settings.cache_max_entries  # type: ignore[attr-defined]

"""Cache-first loader with per-key fetch coalescing and bounded retries.

``load`` answers synchronously from the store (``Fresh``/``Stale``) or with
``Pending``, and hands back a :class:`LoadHandle` whose ``wait()`` resolves
once the fetch sequence it joined settles. At most one fetch sequence runs per
key; failures are retried with exponential backoff and end in a terminal
``Failed`` state that only ``invalidate`` or a ``force_refresh`` load clears.

All state transitions happen on the event loop thread between awaits, so they
are serialized per key without locks. Keys never wait on each other.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import TypeAlias

from cacheloader.logger import bind_fetch_context, get_logger

from .errors import (
    LoaderClosedError,
    LoaderError,
    RetriesExhaustedError,
    classify_error,
    is_retryable,
)
from .keys import short_hash
from .logging import CacheTimer, log_cache_event
from .results import PENDING, Failed, Fresh, LoadResult, Stale
from .retry import delay_for
from .singleflight import Flight, SingleFlight
from .types import (
    CacheBackend,
    CacheEntry,
    FetchFn,
    FetchStatus,
    LoadOptions,
    RetryState,
)

logger = get_logger(__name__)

Listener: TypeAlias = Callable[[LoadResult], None]


def _call_listener(listener: Listener, result: LoadResult, namespace: str) -> None:
    try:
        listener(result)
    except Exception:
        logger.exception("cache_listener_failed", namespace=namespace)


class LoadHandle:
    """Immediate result of a ``load`` call plus access to its settled result."""

    __slots__ = ("key", "result", "_future", "_namespace")

    def __init__(
        self,
        key: str,
        result: LoadResult,
        future: asyncio.Future[LoadResult] | None = None,
        *,
        namespace: str = "default",
    ) -> None:
        self.key = key
        self.result = result
        self._future = future
        self._namespace = namespace

    @property
    def done(self) -> bool:
        return self._future is None or self._future.done()

    async def wait(self) -> LoadResult:
        """Return the settled result; the immediate one if no fetch was involved."""
        if self._future is None:
            return self.result
        # Shielded: one waiter giving up must not cancel the shared fetch.
        return await asyncio.shield(self._future)

    def add_done_callback(self, callback: Listener) -> None:
        """Call ``callback`` with the settled result. Its errors are logged, not raised."""
        if self._future is None:
            _call_listener(callback, self.result, self._namespace)
            return
        self._future.add_done_callback(
            lambda fut: _call_listener(callback, fut.result(), self._namespace)
        )


class CacheCoalescingLoader:
    def __init__(
        self,
        backend: CacheBackend,
        fetch: FetchFn | None = None,
        *,
        namespace: str = "default",
        default_options: LoadOptions | None = None,
        clock: Callable[[], float] = time.time,
        max_failed_entries: int = 1000,
    ) -> None:
        if max_failed_entries <= 0:
            raise ValueError("max_failed_entries must be > 0")
        self._backend = backend
        self._fetch = fetch
        self._namespace = namespace
        self._default_options = default_options or LoadOptions()
        self._clock = clock
        self._singleflight = SingleFlight()
        # Terminal failures by key, oldest first. Evicted keys go back to idle.
        self._failed: OrderedDict[str, LoaderError] = OrderedDict()
        self._max_failed_entries = max_failed_entries
        self._closing = False
        self._listeners: dict[str, list[Listener]] = {}

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def fetch(self) -> FetchFn | None:
        return self._fetch

    @property
    def default_options(self) -> LoadOptions:
        return self._default_options

    @property
    def in_flight_count(self) -> int:
        return len(self._singleflight)

    def load(
        self,
        key: str,
        options: LoadOptions | None = None,
        *,
        fetch: FetchFn | None = None,
        on_update: Listener | None = None,
    ) -> LoadHandle:
        """Return what is known about ``key`` now and start/join a fetch if needed.

        Must be called from a running event loop. ``fetch`` overrides the
        loader's fetch function for this call only; a call that joins an
        in-flight sequence shares that sequence's fetch function.
        ``on_update`` is called once with the settled result.
        """
        opts = options or self._default_options
        fetch_fn = fetch or self._fetch
        key_hash = short_hash(key)
        if fetch_fn is None:
            logger.warning("cache_load_without_fetch", namespace=self._namespace, key=key_hash)
            failed = Failed(LoaderError("no fetch function configured"))
            return self._handle(key, failed, None, on_update)

        if opts.force_refresh:
            # Force clears a terminal failure and never reads the store.
            self._failed.pop(key, None)
            log_cache_event(namespace=self._namespace, cache_event="force", key_hash=key_hash)
            flight = self._attach_or_start(key, fetch_fn, opts)
            return self._handle(key, PENDING, flight, on_update)

        timer = CacheTimer()
        entry = self._backend.get(key)
        if entry is not None:
            age = entry.age(self._clock())
            if age <= opts.max_age:
                log_cache_event(
                    namespace=self._namespace,
                    cache_event="hit",
                    key_hash=key_hash,
                    duration_ms=timer.elapsed_ms(),
                )
                return self._handle(key, Fresh(entry.value, entry.stored_at), None, on_update)

            log_cache_event(
                namespace=self._namespace,
                cache_event="stale",
                key_hash=key_hash,
                duration_ms=timer.elapsed_ms(),
                detail=f"age_s={age:.1f}",
            )
            flight = None
            if key not in self._failed:
                flight = self._attach_or_start(key, fetch_fn, opts)
            return self._handle(key, Stale(entry.value, entry.stored_at), flight, on_update)

        failed = self._failed.get(key)
        if failed is not None:
            # Terminal until invalidate() or a forced load.
            return self._handle(key, Failed(failed), None, on_update)

        log_cache_event(
            namespace=self._namespace,
            cache_event="miss",
            key_hash=key_hash,
            duration_ms=timer.elapsed_ms(),
        )
        flight = self._attach_or_start(key, fetch_fn, opts)
        return self._handle(key, PENDING, flight, on_update)

    async def get(self, key: str, options: LoadOptions | None = None) -> LoadResult:
        """``load`` and, unless the store answered fresh, wait for the fetch to settle."""
        handle = self.load(key, options)
        if isinstance(handle.result, Fresh):
            return handle.result
        return await handle.wait()

    def peek(self, key: str) -> CacheEntry | None:
        """Read the store without fetching or counting a hit/miss."""
        entry = self._backend.get(key)
        log_cache_event(
            namespace=self._namespace,
            cache_event="peek",
            key_hash=short_hash(key),
            detail="present" if entry is not None else "absent",
        )
        return entry

    def invalidate(self, key: str) -> None:
        """Drop the entry, terminal failure and pending retries for ``key``.

        An in-flight fetch is detached rather than aborted: its result is not
        written and only reaches waiters that joined before this call.
        """
        self._backend.delete(key)
        self._failed.pop(key, None)
        flight = self._singleflight.detach(key)
        log_cache_event(
            namespace=self._namespace,
            cache_event="invalidate",
            key_hash=short_hash(key),
            detail="detached_fetch" if flight is not None else None,
        )

    def invalidate_prefix(self, prefix: str) -> int:
        """Invalidate every known key starting with ``prefix``. Returns the count."""
        known = set(self._backend.keys()) | set(self._singleflight.keys()) | set(self._failed)
        matched = sorted(k for k in known if k.startswith(prefix))
        for key in matched:
            self.invalidate(key)
        return len(matched)

    def clear(self) -> int:
        return self.invalidate_prefix("")

    def status(self, key: str) -> FetchStatus:
        flight = self._singleflight.get(key)
        if flight is not None:
            return flight.status
        if key in self._failed:
            return FetchStatus.FAILED
        return FetchStatus.IDLE

    def retry_state(self, key: str) -> RetryState | None:
        flight = self._singleflight.get(key)
        return flight.retry_state if flight is not None else None

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every settled result for ``key``, in settle order."""
        listeners = self._listeners.setdefault(key, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            current = self._listeners.get(key)
            if current is None:
                return
            if listener in current:
                current.remove(listener)
            if not current:
                self._listeners.pop(key, None)

        return unsubscribe

    async def aclose(self) -> None:
        """Cancel every in-flight fetch; their waiters settle as ``Failed``."""
        self._closing = True
        try:
            await self._singleflight.aclose(Failed(LoaderClosedError("loader closed")))
        finally:
            self._closing = False

    def _handle(
        self,
        key: str,
        result: LoadResult,
        flight: Flight | None,
        on_update: Listener | None,
    ) -> LoadHandle:
        handle = LoadHandle(
            key,
            result,
            flight.future if flight is not None else None,
            namespace=self._namespace,
        )
        if on_update is not None:
            handle.add_done_callback(on_update)
        return handle

    def _attach_or_start(self, key: str, fetch: FetchFn, options: LoadOptions) -> Flight:
        flight = self._singleflight.join(key)
        if flight is not None:
            log_cache_event(
                namespace=self._namespace,
                cache_event="coalesced",
                key_hash=short_hash(key),
                detail=f"waiters={flight.waiters}",
            )
            return flight

        async def runner(new_flight: Flight) -> None:
            with bind_fetch_context(self._namespace, short_hash(key)):
                await self._run(new_flight, fetch, options)

        return self._singleflight.start(key, runner)

    async def _run(self, flight: Flight, fetch: FetchFn, options: LoadOptions) -> None:
        key = flight.key
        key_hash = short_hash(key)
        try:
            while True:
                flight.status = FetchStatus.FETCHING
                log_cache_event(
                    namespace=self._namespace,
                    cache_event="fetch",
                    key_hash=key_hash,
                    detail=f"attempt={flight.attempt}",
                )
                timer = CacheTimer()
                try:
                    value = await fetch(key)
                except Exception as exc:
                    error = classify_error(exc)
                else:
                    self._succeed(flight, value, timer)
                    return

                logger.warning(
                    "cache_fetch_failed",
                    namespace=self._namespace,
                    key=key_hash,
                    attempt=flight.attempt,
                    error_kind=error.kind,
                    error=str(error),
                )

                if not is_retryable(error, retry_auth_errors=options.retry_auth_errors):
                    self._fail(flight, error)
                    return
                if flight.attempt >= options.max_retries:
                    self._fail(flight, RetriesExhaustedError(error, attempts=flight.attempt + 1))
                    return

                delay = delay_for(options, flight.attempt)
                flight.attempt += 1
                flight.status = FetchStatus.RETRYING
                flight.retry_state = RetryState(key=key, attempt=flight.attempt, next_delay=delay)
                log_cache_event(
                    namespace=self._namespace,
                    cache_event="retry",
                    key_hash=key_hash,
                    detail=f"attempt={flight.attempt} delay_s={delay:.3f}",
                )
                if not await flight.backoff(delay):
                    # Invalidated while waiting: earlier waiters get the last error.
                    self._fail(flight, error)
                    return
        finally:
            self._singleflight.finish(flight)
            flight.retry_state = None
            if not flight.future.done():
                reason = "loader closed" if self._closing else "fetch cancelled"
                flight.settle(Failed(LoaderClosedError(reason)))

    def _succeed(self, flight: Flight, value: object, timer: CacheTimer) -> None:
        key = flight.key
        now = self._clock()
        result: LoadResult = Fresh(value, now)

        if flight.detached:
            log_cache_event(
                namespace=self._namespace,
                cache_event="discard",
                key_hash=short_hash(key),
                duration_ms=timer.elapsed_ms(),
                detail="reason=invalidated",
            )
        else:
            current = self._backend.get(key)
            if current is not None and current.stored_at > now:
                # Never replace a newer value with an older response.
                result = Fresh(current.value, current.stored_at)
                log_cache_event(
                    namespace=self._namespace,
                    cache_event="discard",
                    key_hash=short_hash(key),
                    duration_ms=timer.elapsed_ms(),
                    detail="reason=older_than_stored",
                )
            else:
                self._backend.set(key, CacheEntry(key=key, value=value, stored_at=now))
                log_cache_event(
                    namespace=self._namespace,
                    cache_event="set",
                    key_hash=short_hash(key),
                    duration_ms=timer.elapsed_ms(),
                )
            self._failed.pop(key, None)

        flight.status = FetchStatus.IDLE
        flight.settle(result)
        if not flight.detached:
            self._notify(key, result)

    def _fail(self, flight: Flight, error: LoaderError) -> None:
        key = flight.key
        flight.status = FetchStatus.FAILED
        log_cache_event(
            namespace=self._namespace,
            cache_event="failed",
            key_hash=short_hash(key),
            detail=f"kind={error.kind} attempts={flight.attempt + 1}",
        )
        result = Failed(error)
        if not flight.detached:
            self._remember_failure(key, error)
        flight.settle(result)
        if not flight.detached:
            self._notify(key, result)

    def _remember_failure(self, key: str, error: LoaderError) -> None:
        self._failed[key] = error
        self._failed.move_to_end(key)
        while len(self._failed) > self._max_failed_entries:
            evicted, _ = self._failed.popitem(last=False)
            log_cache_event(
                namespace=self._namespace,
                cache_event="evict",
                key_hash=short_hash(evicted),
                detail="reason=failed_limit",
            )

    def _notify(self, key: str, result: LoadResult) -> None:
        for listener in list(self._listeners.get(key, ())):
            _call_listener(listener, result, self._namespace)

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from .results import LoadResult
from .types import FetchStatus, RetryState


@dataclass(slots=True, eq=False)
class Flight:
    """One fetch sequence (first attempt plus retries) shared by every waiter on a key."""

    key: str
    future: asyncio.Future[LoadResult]
    status: FetchStatus = FetchStatus.FETCHING
    attempt: int = 0
    retry_state: RetryState | None = None
    waiters: int = 1
    detached: bool = False
    task: asyncio.Task[None] | None = None
    _stop_retrying: asyncio.Event = field(default_factory=asyncio.Event)

    def settle(self, result: LoadResult) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def detach(self) -> None:
        """Stop owning the key: results are no longer persisted and retries stop."""
        self.detached = True
        self.retry_state = None
        self._stop_retrying.set()

    async def backoff(self, delay: float) -> bool:
        """Sleep before the next attempt. Returns False if retries were cancelled."""
        if self._stop_retrying.is_set():
            return False
        try:
            await asyncio.wait_for(self._stop_retrying.wait(), timeout=delay)
        except TimeoutError:
            return True
        return False


class SingleFlight:
    """Registry of in-flight fetch sequences, at most one per key."""

    def __init__(self) -> None:
        self._flights: dict[str, Flight] = {}
        self._tasks: dict[asyncio.Task[None], Flight] = {}

    def get(self, key: str) -> Flight | None:
        return self._flights.get(key)

    def join(self, key: str) -> Flight | None:
        flight = self._flights.get(key)
        if flight is not None:
            flight.waiters += 1
        return flight

    def start(self, key: str, runner: Callable[[Flight], Awaitable[None]]) -> Flight:
        if key in self._flights:
            raise RuntimeError("a fetch is already in flight for this key")
        loop = asyncio.get_running_loop()
        flight = Flight(key=key, future=loop.create_future())
        self._flights[key] = flight
        task = loop.create_task(runner(flight))
        flight.task = task
        # Detached flights are referenced by nothing else while they finish.
        self._tasks[task] = flight
        task.add_done_callback(self._forget)
        return flight

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._tasks.pop(task, None)

    def finish(self, flight: Flight) -> None:
        if self._flights.get(flight.key) is flight:
            self._flights.pop(flight.key, None)

    def detach(self, key: str) -> Flight | None:
        flight = self._flights.pop(key, None)
        if flight is not None:
            flight.detach()
        return flight

    def keys(self) -> list[str]:
        return list(self._flights.keys())

    def __len__(self) -> int:
        return len(self._flights)

    async def aclose(self, closed_result: LoadResult) -> None:
        """Cancel every running sequence and settle its waiters with ``closed_result``."""
        running = dict(self._tasks)
        for flight in list(self._flights.values()):
            flight.detach()
        self._flights.clear()
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        # A task cancelled before its first step never reaches its own cleanup.
        for flight in running.values():
            flight.settle(closed_result)

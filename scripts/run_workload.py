"""Drive a repeatable simulated workload through a loader and write a JSON result.

Each round issues concurrent loads for a fixed set of keys against a fake
upstream with configurable latency and failure rate, then reports per-state
counts, upstream calls and cache counter deltas.

Output JSON shape is stable to support comparisons.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cacheloader.core.cache import stats as cache_stats
from cacheloader.core.cache.errors import NetworkError
from cacheloader.core.cache.loader import CacheCoalescingLoader
from cacheloader.core.cache.memory_backend import MemoryCacheBackend
from cacheloader.core.cache.types import LoadOptions
from cacheloader.logger import setup_logging


@dataclass(slots=True)
class FakeUpstream:
    latency_seconds: float
    failure_rate: float
    rng: random.Random
    calls: int = 0

    async def fetch(self, key: str) -> dict[str, Any]:
        self.calls += 1
        await asyncio.sleep(self.latency_seconds)
        if self.rng.random() < self.failure_rate:
            raise NetworkError("simulated upstream failure")
        return {"key": key, "version": self.calls}


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    values_sorted = sorted(values)
    k = int(round((p / 100.0) * (len(values_sorted) - 1)))
    return float(values_sorted[max(0, min(k, len(values_sorted) - 1))])


async def _load_once(
    loader: CacheCoalescingLoader,
    key: str,
    options: LoadOptions,
) -> dict[str, Any]:
    start = time.perf_counter()
    handle = loader.load(key, options)
    immediate = handle.result.state
    settled = await handle.wait()
    duration_ms = (time.perf_counter() - start) * 1000.0
    return {
        "key": key,
        "immediate": str(immediate),
        "settled": str(settled.state),
        "duration_ms": round(duration_ms, 3),
    }


def _summarize(results: list[dict[str, Any]]) -> dict[str, Any]:
    immediate: dict[str, int] = {}
    settled: dict[str, int] = {}
    durations: list[float] = []
    for r in results:
        immediate[r["immediate"]] = immediate.get(r["immediate"], 0) + 1
        settled[r["settled"]] = settled.get(r["settled"], 0) + 1
        durations.append(float(r["duration_ms"]))

    return {
        "total": len(results),
        "immediate": dict(sorted(immediate.items())),
        "settled": dict(sorted(settled.items())),
        "p50_ms": round(_percentile(durations, 50), 3),
        "p95_ms": round(_percentile(durations, 95), 3),
        "max_ms": round(max(durations) if durations else 0.0, 3),
    }


async def run_workload(
    *,
    keys: int,
    concurrency: int,
    rounds: int,
    latency_seconds: float,
    failure_rate: float,
    max_age_seconds: float,
    max_retries: int,
    base_delay_seconds: float,
    seed: int = 0,
) -> dict[str, Any]:
    upstream = FakeUpstream(
        latency_seconds=latency_seconds,
        failure_rate=failure_rate,
        rng=random.Random(seed),
    )
    namespace = "workload"
    loader = CacheCoalescingLoader(
        MemoryCacheBackend(max_entries=max(1, keys)),
        upstream.fetch,
        namespace=namespace,
    )
    options = LoadOptions(
        max_age=max_age_seconds,
        max_retries=max_retries,
        base_delay=base_delay_seconds,
    )

    before = cache_stats.snapshot()
    results: list[dict[str, Any]] = []
    try:
        for _ in range(rounds):
            tasks = [
                _load_once(loader, f"item:{k}", options)
                for k in range(keys)
                for _ in range(concurrency)
            ]
            results.extend(await asyncio.gather(*tasks))
    finally:
        await loader.aclose()
    after = cache_stats.snapshot()

    return {
        "version": 1,
        "keys": keys,
        "concurrency": concurrency,
        "rounds": rounds,
        "upstream_calls": upstream.calls,
        "cache_delta": cache_stats.diff(before, after).get(namespace, {}),
        "hit_rate": round(cache_stats.hit_rate(namespace), 2),
        "summary": _summarize(results),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a simulated loader workload")
    parser.add_argument("--keys", type=int, default=5, help="Distinct keys per round")
    parser.add_argument("--concurrency", type=int, default=10, help="Concurrent loads per key")
    parser.add_argument("--rounds", type=int, default=3, help="Number of rounds")
    parser.add_argument("--latency-seconds", type=float, default=0.05, help="Upstream latency")
    parser.add_argument("--failure-rate", type=float, default=0.1, help="Upstream failure rate")
    parser.add_argument("--max-age-seconds", type=float, default=60.0, help="Freshness threshold")
    parser.add_argument("--max-retries", type=int, default=3, help="Retries per fetch sequence")
    parser.add_argument("--base-delay-seconds", type=float, default=0.05, help="Backoff base")
    parser.add_argument("--seed", type=int, default=0, help="Random seed for failures")
    parser.add_argument("--out", default="workload.json", help="Output JSON file path")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(debug=args.debug)

    data = asyncio.run(
        run_workload(
            keys=args.keys,
            concurrency=args.concurrency,
            rounds=args.rounds,
            latency_seconds=args.latency_seconds,
            failure_rate=args.failure_rate,
            max_age_seconds=args.max_age_seconds,
            max_retries=args.max_retries,
            base_delay_seconds=args.base_delay_seconds,
            seed=args.seed,
        )
    )
    Path(args.out).write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    print(json.dumps(data["summary"], indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

from .types import LoadOptions


def backoff_delay(attempt: int, *, base_delay: float, max_delay: float | None = None) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (0-based).

    ``base_delay * 2**attempt``, capped at ``max_delay`` when given.
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    delay = base_delay * (2**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def delay_for(options: LoadOptions, attempt: int) -> float:
    return backoff_delay(attempt, base_delay=options.base_delay, max_delay=options.max_delay)

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

from .errors import LoaderError


class LoadState(StrEnum):
    FRESH = "fresh"
    STALE = "stale"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Fresh:
    value: Any
    stored_at: float

    state = LoadState.FRESH
    has_value = True


@dataclass(frozen=True, slots=True)
class Stale:
    value: Any
    stored_at: float

    state = LoadState.STALE
    has_value = True


@dataclass(frozen=True, slots=True)
class Pending:
    state = LoadState.PENDING
    has_value = False


@dataclass(frozen=True, slots=True)
class Failed:
    error: LoaderError

    state = LoadState.FAILED
    has_value = False


LoadResult: TypeAlias = Fresh | Stale | Pending | Failed

PENDING = Pending()

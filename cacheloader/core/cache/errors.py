"""Loader error taxonomy.

Fetch functions may raise these directly; anything else they raise is mapped
onto the taxonomy by :func:`classify_error`. The loader itself never raises
across its public API: errors reach callers as ``Failed(error)`` results.
"""

from __future__ import annotations


class LoaderError(Exception):
    """Base class for errors surfaced through ``Failed`` results."""

    kind: str = "loader_error"
    retryable: bool = False

    def __init__(self, message: str = "", *, cause: BaseException | None = None) -> None:
        super().__init__(message or self.kind)
        self.cause = cause


class NetworkError(LoaderError):
    """Transient failure; drives the backoff retry path."""

    kind = "network"
    retryable = True


class AuthError(LoaderError):
    """Credentials rejected. Not retried unless ``retry_auth_errors`` is set."""

    kind = "auth"
    retryable = False


class MalformedResponseError(LoaderError):
    """The fetch function returned something unusable."""

    kind = "malformed_response"
    retryable = False


class RetriesExhaustedError(LoaderError):
    """Emitted by the loader once ``max_retries`` retries have all failed."""

    kind = "retries_exhausted"
    retryable = False

    def __init__(self, last_error: LoaderError, *, attempts: int) -> None:
        super().__init__(
            f"gave up after {attempts} attempts: {last_error}",
            cause=last_error,
        )
        self.last_error = last_error
        self.attempts = attempts


class LoaderClosedError(LoaderError):
    """Delivered to waiters whose fetch was cancelled by shutdown."""

    kind = "closed"
    retryable = False


def classify_error(exc: BaseException) -> LoaderError:
    """Map an exception raised by a fetch function onto the taxonomy."""
    if isinstance(exc, LoaderError):
        return exc
    if isinstance(exc, (TimeoutError, ConnectionError, OSError)):
        return NetworkError(str(exc) or type(exc).__name__, cause=exc)
    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return MalformedResponseError(str(exc) or type(exc).__name__, cause=exc)
    # Unknown failures are treated as transient.
    return NetworkError(f"{type(exc).__name__}: {exc}", cause=exc)


def is_retryable(error: LoaderError, *, retry_auth_errors: bool = False) -> bool:
    if isinstance(error, AuthError):
        return retry_auth_errors
    return error.retryable

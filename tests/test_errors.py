import pytest

from cacheloader.core.cache.errors import (
    AuthError,
    LoaderError,
    MalformedResponseError,
    NetworkError,
    RetriesExhaustedError,
    classify_error,
    is_retryable,
)


def test_loader_errors_pass_through() -> None:
    err = AuthError("expired")
    assert classify_error(err) is err


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (TimeoutError("slow"), NetworkError),
        (ConnectionResetError("reset"), NetworkError),
        (OSError("unreachable"), NetworkError),
        (ValueError("bad json"), MalformedResponseError),
        (KeyError("id"), MalformedResponseError),
        (TypeError("none"), MalformedResponseError),
        (RuntimeError("??"), NetworkError),
    ],
)
def test_classify_error(exc: Exception, expected: type[LoaderError]) -> None:
    classified = classify_error(exc)
    assert isinstance(classified, expected)
    assert classified.cause is exc


def test_retryability_defaults() -> None:
    assert is_retryable(NetworkError())
    assert not is_retryable(AuthError())
    assert is_retryable(AuthError(), retry_auth_errors=True)
    assert not is_retryable(MalformedResponseError())


def test_retries_exhausted_wraps_last_error() -> None:
    last = NetworkError("reset")
    err = RetriesExhaustedError(last, attempts=4)

    assert err.last_error is last
    assert err.cause is last
    assert err.kind == "retries_exhausted"
    assert "4 attempts" in str(err)

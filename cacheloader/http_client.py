"""
Shared HTTP client and JSON fetch adapter.

This module provides a pooled httpx.AsyncClient and ``make_json_fetch``, which
turns an endpoint into a loader fetch function whose failures are mapped onto
the loader error taxonomy.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx

from cacheloader.config import settings
from cacheloader.core.cache.errors import AuthError, MalformedResponseError, NetworkError
from cacheloader.core.cache.types import FetchFn
from cacheloader.logger import get_logger

logger = get_logger(__name__)

# Global shared HTTP client
_shared_client: httpx.AsyncClient | None = None

DEFAULT_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=20,
    keepalive_expiry=30.0,
)

# Statuses worth retrying: request timeout, rate limiting and upstream failures.
RETRYABLE_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})
AUTH_STATUSES = frozenset({401, 403})


async def get_http_client() -> httpx.AsyncClient:
    """
    Get or create the shared HTTP client.

    Returns:
        httpx.AsyncClient: The shared HTTP client instance
    """
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_request_timeout_seconds, connect=10.0),
            limits=DEFAULT_LIMITS,
            http2=True,
        )
        logger.info(
            "http_client_created",
            max_connections=DEFAULT_LIMITS.max_connections,
            max_keepalive=DEFAULT_LIMITS.max_keepalive_connections,
        )
    return _shared_client


async def close_http_client() -> None:
    """Close the shared HTTP client, releasing all connections."""
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
        logger.info("http_client_closed")
    _shared_client = None


def create_scoped_client(
    base_url: str,
    timeout: float | None = None,
    headers: dict[str, str] | None = None,
    max_connections: int = 10,
    max_keepalive_connections: int = 5,
) -> httpx.AsyncClient:
    """
    Create a client for one upstream API with its own base_url and headers.

    Args:
        base_url: Base URL for all requests
        timeout: Request timeout in seconds (defaults to http_request_timeout_seconds)
        headers: Optional default headers for all requests
        max_connections: Maximum number of connections
        max_keepalive_connections: Maximum number of keepalive connections
    """
    effective_timeout = settings.http_request_timeout_seconds if timeout is None else timeout
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(effective_timeout),
        headers=headers or {},
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=30.0,
        ),
        http2=True,
    )


def _key_id(key: str) -> str:
    """The part of a FetchKey after the resource prefix (``profile:42`` -> ``42``)."""
    _, sep, rest = key.partition(":")
    return rest if sep else key


def make_json_fetch(
    client: httpx.AsyncClient | None,
    path_template: str,
    *,
    params: dict[str, Any] | None = None,
    timeout_seconds: float | None = None,
    key_to_path: Callable[[str], str] | None = None,
) -> FetchFn:
    """Build a fetch function that GETs JSON for a key.

    ``path_template`` is formatted with ``id`` (the key without its resource
    prefix) unless ``key_to_path`` is given. When ``client`` is None the shared
    client is used.

    Failure mapping:
    - transport errors and 408/425/429/5xx -> NetworkError
    - 401/403 -> AuthError
    - any other non-2xx or a body that is not JSON -> MalformedResponseError
    """
    effective_timeout = (
        settings.http_request_timeout_seconds if timeout_seconds is None else timeout_seconds
    )

    async def fetch(key: str) -> Any:
        http = client if client is not None else await get_http_client()
        path = key_to_path(key) if key_to_path is not None else path_template.format(id=_key_id(key))

        try:
            response = await http.get(path, params=params, timeout=effective_timeout)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"timeout fetching {path}", cause=exc) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"{type(exc).__name__} fetching {path}", cause=exc) from exc

        status = response.status_code
        if status in AUTH_STATUSES:
            raise AuthError(f"HTTP {status} for {path}")
        if status in RETRYABLE_STATUSES:
            raise NetworkError(f"HTTP {status} for {path}")
        if not response.is_success:
            raise MalformedResponseError(f"HTTP {status} for {path}")

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedResponseError(f"invalid JSON from {path}", cause=exc) from exc

    return fetch

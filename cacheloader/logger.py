"""Structured logging configuration using structlog."""

import logging
import os
import socket
from contextlib import AbstractContextManager

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder

from cacheloader.config import settings

# Cache hostname and PID at module load time (they don't change)
_HOSTNAME = socket.gethostname()
_PID = os.getpid()

# Events from these modules are reported at their caller
_CALLSITE_IGNORES = ["cacheloader.logger", "cacheloader.core.cache.logging"]


def _join_caller(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Collapse callsite parameters into a single ``caller`` field."""
    filename = event_dict.pop("filename", None)
    func_name = event_dict.pop("func_name", None)
    lineno = event_dict.pop("lineno", None)
    if filename is not None:
        event_dict["caller"] = f"{filename}:{func_name}:{lineno}"
    return event_dict


def _format_log_message(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> str:
    """
    Render a log event as a single line.

    Produces output like: INFO:     [hostname:pid] [file:function:line] event_name key=value
    """
    level = event_dict.pop("level", "info").upper()
    event = event_dict.pop("event", "")
    caller = event_dict.pop("caller", "")

    context_parts = [f"{k}={v}" for k, v in event_dict.items()]
    context_str = " ".join(context_parts)

    prefix = f"{level}:     [{_HOSTNAME}:{_PID}]"
    if caller:
        prefix = f"{prefix} [{caller}]"

    if context_str:
        return f"{prefix} {event} {context_str}"
    return f"{prefix} {event}"


def bind_fetch_context(namespace: str, key_hash: str) -> AbstractContextManager:
    """
    Bind the loader namespace and key hash for the duration of a fetch sequence.

    Anything a fetch function logs while the context is active carries
    ``cache_namespace`` and ``cache_key``.
    """
    return structlog.contextvars.bound_contextvars(
        cache_namespace=namespace,
        cache_key=key_hash,
    )


def setup_logging(*, debug: bool | None = None) -> None:
    """
    Configure structlog for the loader.

    Sets up structured logging with:
    - Context variable merging (fetch context, or ids bound by the integrating app)
    - Log level filtering based on the DEBUG setting
    - Caller file/function/line in debug mode
    - Single-line key=value output
    """
    enabled = settings.debug if debug is None else debug
    log_level = logging.DEBUG if enabled else logging.INFO

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if enabled:
        processors += [
            CallsiteParameterAdder(
                {
                    CallsiteParameter.FILENAME,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                },
                additional_ignores=_CALLSITE_IGNORES,
            ),
            _join_caller,
        ]
    processors.append(_format_log_message)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,  # Allow reconfiguration
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structlog logger, typically for ``__name__``."""
    return structlog.get_logger(name)

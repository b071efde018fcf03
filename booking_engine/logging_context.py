"""Correlation ID logging context for tracing requests across modules.

Provides a request_id-aware logger that attaches a correlation ID to every
log message, making it easy to follow one booking from creation through
the payment webhook to its reminder delivery.

Usage:
    from booking_engine.logging_context import get_request_logger, request_context

    logger = get_request_logger(__name__)
    with request_context("REQ-abc123"):
        logger.info("Processing request")  # record.request_id == "REQ-abc123"
"""

import functools
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Callable, Iterator, TypeVar

DEFAULT_REQUEST_ID = "NO_REQUEST_ID"
LOG_FORMAT = "%(asctime)s [%(name)s] [%(request_id)s] %(levelname)s: %(message)s"

_request_id: ContextVar[str] = ContextVar("request_id", default=DEFAULT_REQUEST_ID)

F = TypeVar("F", bound=Callable)


def set_request_id(request_id: str) -> Token:
    """Set the correlation ID for the current thread or async context.

    Pass the returned token to ``reset_request_id`` to restore the
    previous value.
    """
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


def new_request_id(prefix: str = "REQ") -> str:
    """Generate a fresh correlation ID."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Bind ``request_id`` for the duration of the block."""
    token = set_request_id(request_id)
    try:
        yield request_id
    finally:
        reset_request_id(token)


def with_request_id(prefix: str) -> Callable[[F], F]:
    """Run the wrapped call under a fresh ID unless one is already bound."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if get_request_id() != DEFAULT_REQUEST_ID:
                return func(*args, **kwargs)
            with request_context(new_request_id(prefix)):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def install_request_id_filter(handler: logging.Handler) -> None:
    """Make ``%(request_id)s`` safe to use in ``handler``'s format."""
    if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
        handler.addFilter(RequestIdFilter())


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` to each record so formatters can
    include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger

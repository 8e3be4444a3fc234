from __future__ import annotations
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Inbound ids end up in logs and response headers; keep them short
MAX_CORRELATION_ID_LENGTH = 128


def _normalize(value: Optional[str]) -> str:
    value = (value or "").strip()
    if not value or len(value) > MAX_CORRELATION_ID_LENGTH or not value.isprintable():
        return str(uuid.uuid4())
    return value


def set_correlation_id(value: Optional[str]) -> str:
    """Adopt ``value`` (or a fresh UUID when it is unusable) for the current context."""
    value = _normalize(value)
    _correlation_id.set(value)
    return value


def get_correlation_id(default: Optional[str] = None) -> Optional[str]:
    return _correlation_id.get() or default


@contextmanager
def correlation_scope(value: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for work that does not start from a request (background jobs)."""
    token = _correlation_id.set(_normalize(value))
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)

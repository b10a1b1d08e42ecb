"""Scoped logging context.

Fields pushed here (entity id, event type, channel, ...) are attached to every
log record emitted inside the scope, including records emitted from the
dispatch worker threads, since each task runs inside its own copied context.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Dict, Iterator

LogContextVar: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently in scope."""
    return dict(LogContextVar.get())


def push_log_context(**fields: Any) -> Token:
    """Merge ``fields`` into the active context and return a reset token."""
    merged = {**LogContextVar.get(), **fields}
    return LogContextVar.set(merged)


def pop_log_context(token: Token) -> None:
    """Restore the context captured by ``push_log_context``."""
    LogContextVar.reset(token)


def clear_log_context() -> None:
    """Drop all context fields (used by tests)."""
    LogContextVar.set({})


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Attach ``fields`` to every record logged inside the ``with`` block.

    Example:
        >>> with log_context(entity_kind="job", entity_id=42):
        ...     logger.info("Transition applied")
    """
    token = push_log_context(**fields)
    try:
        yield get_log_context()
    finally:
        pop_log_context(token)

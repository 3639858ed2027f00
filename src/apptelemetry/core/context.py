"""Request-scoped context carried through async boundaries.

Two context variables live here: the structured fields bound to the
current request (attached to every log record) and the currently active
span (used for parent lookup and log correlation).
"""

from contextvars import ContextVar, Token
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apptelemetry.core.tracing import SpanHandle

_log_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "apptelemetry_log_context", default=None
)
_active_span: ContextVar["SpanHandle | None"] = ContextVar(
    "apptelemetry_active_span", default=None
)


def set_log_context(**fields: Any) -> None:
    """Replace the log context for the current task."""
    _log_context.set(dict(fields))


def update_log_context(**fields: Any) -> None:
    """Merge fields into the log context for the current task."""
    current = _log_context.get() or {}
    _log_context.set({**current, **fields})


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current log context."""
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    """Drop all fields from the log context."""
    _log_context.set(None)


def get_active_span() -> "SpanHandle | None":
    """Return the span handle active in the current task, if any."""
    return _active_span.get()


def activate_span(handle: "SpanHandle | None") -> Token["SpanHandle | None"]:
    """Make a span the active one; returns a token for restore_span()."""
    return _active_span.set(handle)


def restore_span(token: Token["SpanHandle | None"]) -> None:
    """Restore the span that was active before activate_span()."""
    _active_span.reset(token)

"""Per-task correlation fields attached to every log record.

An HTTP request or a background rebuild runs with its own set of fields: the
OpenTelemetry ``trace_id``/``span_id`` of the active span, the ``operation``
being served (``search``, ``suggest``, ``rebuild`` ...) and, once known, the
snapshot ``generation`` it works against. The fields live in a ``ContextVar``,
so concurrent requests and rebuild tasks never see each other's values.
"""

from __future__ import annotations

from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from types import MappingProxyType
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from opentelemetry.trace import Span


_NO_FIELDS: Mapping[str, object] = MappingProxyType({})

_log_fields: ContextVar[Mapping[str, object]] = ContextVar("content_search_log_fields", default=_NO_FIELDS)


def log_fields() -> dict[str, object]:
    """Copy of the fields bound in the current task."""
    return dict(_log_fields.get())


def bind(**fields: object) -> Token:
    """Add fields for the rest of the current task. ``None`` values are skipped."""
    merged = dict(_log_fields.get())
    merged.update((key, value) for key, value in fields.items() if value is not None)
    return _log_fields.set(MappingProxyType(merged))


def unbind(token: Token) -> None:
    _log_fields.reset(token)


@contextmanager
def bound(**fields: object) -> Generator[None, None, None]:
    """Bind fields for the duration of a block."""
    token = bind(**fields)
    try:
        yield
    finally:
        unbind(token)


def span_fields(span: Span) -> dict[str, str]:
    """Hex ids of a span, or nothing for a non-recording placeholder span."""
    ctx = span.get_span_context()
    if not ctx.is_valid:
        return {}
    return {"trace_id": format(ctx.trace_id, "032x"), "span_id": format(ctx.span_id, "016x")}

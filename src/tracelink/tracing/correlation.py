"""Log/trace correlation.

Binding a span pushes its `trace_id` and `span_id` (hex) into
`structlog.contextvars`, so every structured log record emitted while the
scope is active carries them, without per-call plumbing. Bindings live in
context variables: each thread and each asyncio task sees its own scope, and
nested scopes shadow outer ones until they are released.

Usage:
    span = tracer.start_span("handle request", parent=parent)
    with bind(span):
        log.info("request_handled")   # includes trace_id and span_id
    span.end()
"""

from contextvars import ContextVar, Token
from types import TracebackType
from typing import TYPE_CHECKING, Any, Mapping

import structlog

from tracelink.tracing.context import TraceContext

if TYPE_CHECKING:
    from tracelink.tracing.span import Span

_current_span: ContextVar["Span | None"] = ContextVar("tracelink_current_span", default=None)


class LogCorrelationScope:
    """Handle for one active span binding.

    The binding is in place as soon as the scope is created by `bind()` and
    is undone by `release()` or by leaving the `with` block. Release is
    idempotent and restores whatever binding was active before.
    """

    def __init__(self, span: "Span") -> None:  # noqa: D107
        self.span = span
        self._span_token: Token["Span | None"] | None = None
        self._log_tokens: Mapping[str, Token[Any]] | None = None

    @property
    def active(self) -> bool:
        """Whether the binding is still in place."""
        return self._span_token is not None

    def _activate(self) -> None:
        self._span_token = _current_span.set(self.span)
        self._log_tokens = structlog.contextvars.bind_contextvars(
            trace_id=self.span.context.trace_id_hex,
            span_id=self.span.context.span_id_hex,
        )

    def release(self) -> None:
        """Undo the binding, restoring the enclosing scope (if any)."""
        if self._span_token is None:
            return
        if self._log_tokens is not None:
            structlog.contextvars.reset_contextvars(**self._log_tokens)
        _current_span.reset(self._span_token)
        self._span_token = None
        self._log_tokens = None

    def __enter__(self) -> "LogCorrelationScope":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def bind(span: "Span") -> LogCorrelationScope:
    """Make `span` the current span and correlate log records with it.

    Args:
        span: The span whose ids should appear on log records.

    Returns:
        An active scope; release it (or use it as a context manager) when the
        work covered by the span is done.
    """
    scope = LogCorrelationScope(span)
    scope._activate()
    return scope


def current_span() -> "Span | None":
    """Return the span bound in the current context, if any."""
    return _current_span.get()


def current_context() -> TraceContext | None:
    """Return the TraceContext of the current span, if any."""
    span = _current_span.get()
    return span.context if span is not None else None


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Structlog processor adding trace_id/span_id of the current span.

    Fields that are already present (e.g. merged from contextvars or passed
    explicitly by the caller) are left untouched.
    """
    span = _current_span.get()
    if span is not None:
        event_dict.setdefault("trace_id", span.context.trace_id_hex)
        event_dict.setdefault("span_id", span.context.span_id_hex)
    return event_dict

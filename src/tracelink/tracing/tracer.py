"""The span-creation authority handed to request-handling code."""

from contextlib import contextmanager
from typing import Any, Callable, Generator, Mapping

from tracelink.tracing.context import (
    DEFAULT_TRACE_FLAGS,
    TraceContext,
    generate_span_id,
    generate_trace_id,
)
from tracelink.tracing.correlation import bind, current_context
from tracelink.tracing.propagation import Getter, Setter, TraceContextPropagator
from tracelink.tracing.span import Span
from tracelink.tracing.types import SpanKind

_INHERIT = object()


class Tracer:
    """Starts spans and routes finished ones to the exporter.

    Args:
        service_name: Name of the instrumented service (instrumentation scope).
        on_end: Receives every finished span exactly once (normally the
            exporter's enqueue).
        propagator: Codec used by extract()/inject().
    """

    def __init__(
        self,
        service_name: str,
        on_end: Callable[[Span], Any],
        propagator: TraceContextPropagator | None = None,
    ) -> None:  # noqa: D107
        self.service_name = service_name
        self.propagator = propagator or TraceContextPropagator()
        self._on_end = on_end

    def start_span(
        self,
        name: str,
        parent: TraceContext | None = None,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Span:
        """Start a span.

        Args:
            name: Operation name.
            parent: Parent context. When given, the span joins the parent's
                trace; otherwise it becomes the root of a new trace.
            kind: Role of the span.
            attributes: Initial attributes.

        Returns:
            The started span. The caller owns it until `end()`.
        """
        if parent is not None and parent.is_valid:
            context = TraceContext(
                trace_id=parent.trace_id,
                span_id=generate_span_id(),
                trace_flags=parent.trace_flags,
                trace_state=parent.trace_state,
            )
            parent_span_id: int | None = parent.span_id
        else:
            context = TraceContext(
                trace_id=generate_trace_id(),
                span_id=generate_span_id(),
                trace_flags=DEFAULT_TRACE_FLAGS,
            )
            parent_span_id = None

        return Span(
            name,
            context,
            parent_span_id=parent_span_id,
            kind=kind,
            attributes=attributes,
            on_end=self._on_end,
        )

    @contextmanager
    def start_as_current_span(
        self,
        name: str,
        parent: Any = _INHERIT,
        *,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Start a span, bind it for log correlation, and end it on exit.

        Args:
            name: Operation name.
            parent: Parent context. Defaults to the current span's context
                (a nested unit of work); pass None to force a new trace.
            kind: Role of the span.
            attributes: Initial attributes.

        Yields:
            The active span. Exceptions are recorded on it and re-raised.
        """
        if parent is _INHERIT:
            parent = current_context()
        span = self.start_span(name, parent, kind=kind, attributes=attributes)
        with span, bind(span):
            yield span

    def extract(self, carrier: Getter) -> TraceContext | None:
        """Extract a remote parent context from inbound headers."""
        return self.propagator.extract(carrier)

    def inject(self, carrier: Setter, context: TraceContext | None = None) -> None:
        """Inject `context` (default: the current span's) into outbound headers."""
        self.propagator.inject(context if context is not None else current_context(), carrier)

    def __repr__(self) -> str:  # noqa: D105
        return f"Tracer(service_name={self.service_name!r})"

"""Trace context propagation, spans and log correlation.

The process-wide registry lives in `tracelink.tracing.registry` and is
re-exported from the top-level package.
"""

from tracelink.tracing.context import TraceContext, generate_span_id, generate_trace_id
from tracelink.tracing.correlation import (
    LogCorrelationScope,
    add_trace_context,
    bind,
    current_context,
    current_span,
)
from tracelink.tracing.propagation import (
    TRACEPARENT_HEADER,
    TRACESTATE_HEADER,
    HeaderCarrier,
    TraceContextPropagator,
    format_traceparent,
    parse_traceparent,
)
from tracelink.tracing.span import Span, SpanEvent
from tracelink.tracing.tracer import Tracer
from tracelink.tracing.types import (
    SinkConfigError,
    SpanKind,
    SpanStatus,
    StatusCode,
    TracingAlreadyInitializedError,
    TracingError,
    TracingNotInitializedError,
)

__all__ = [
    "TraceContext",
    "generate_trace_id",
    "generate_span_id",
    "TraceContextPropagator",
    "HeaderCarrier",
    "TRACEPARENT_HEADER",
    "TRACESTATE_HEADER",
    "parse_traceparent",
    "format_traceparent",
    "Span",
    "SpanEvent",
    "SpanKind",
    "SpanStatus",
    "StatusCode",
    "Tracer",
    "LogCorrelationScope",
    "bind",
    "current_span",
    "current_context",
    "add_trace_context",
    "TracingError",
    "TracingNotInitializedError",
    "TracingAlreadyInitializedError",
    "SinkConfigError",
]

"""tracelink: trace context propagation, log correlation and batched span export.

Typical request flow:

    from tracelink import bind, get_tracer, init_tracing, shutdown_tracing

    init_tracing("checkout", "http://otel-collector:4318")   # once, at startup

    tracer = get_tracer()
    parent = tracer.extract(request.headers)
    with tracer.start_as_current_span("handle checkout", parent, kind=SpanKind.SERVER) as span:
        span.set_attribute("http.route", "/checkout")
        log.info("checkout_started")                     # carries trace_id/span_id

    shutdown_tracing()                                    # once, at exit
"""

from tracelink.export import BatchSpanExporter, ExporterStats, SpanSink, create_sink
from tracelink.tracing import (
    HeaderCarrier,
    LogCorrelationScope,
    SinkConfigError,
    Span,
    SpanKind,
    StatusCode,
    TraceContext,
    TraceContextPropagator,
    Tracer,
    TracingAlreadyInitializedError,
    TracingError,
    TracingNotInitializedError,
    bind,
    current_context,
    current_span,
)
from tracelink.tracing.registry import (
    TracerRegistry,
    get_propagator,
    get_registry,
    get_tracer,
    init_tracing,
    shutdown_tracing,
)

__all__ = [
    # Lifecycle
    "init_tracing",
    "shutdown_tracing",
    "get_tracer",
    "get_propagator",
    "get_registry",
    "TracerRegistry",
    # Tracing
    "Tracer",
    "Span",
    "SpanKind",
    "StatusCode",
    "TraceContext",
    "TraceContextPropagator",
    "HeaderCarrier",
    "LogCorrelationScope",
    "bind",
    "current_span",
    "current_context",
    # Export
    "BatchSpanExporter",
    "ExporterStats",
    "SpanSink",
    "create_sink",
    # Errors
    "TracingError",
    "TracingNotInitializedError",
    "TracingAlreadyInitializedError",
    "SinkConfigError",
]

"""OTLP/JSON encoding of span batches.

Produces the `ExportTraceServiceRequest` JSON mapping accepted by
OpenTelemetry collectors on `POST /v1/traces` with
`Content-Type: application/json`: hex-encoded ids, nanosecond timestamps as
decimal strings, and typed attribute values.
"""

from typing import TYPE_CHECKING, Any, Mapping, Sequence

if TYPE_CHECKING:
    from tracelink.tracing.span import Span


def _any_value(value: Any) -> dict[str, Any]:
    """Encode an attribute value as an OTLP AnyValue."""
    # bool before int: bool is a subclass of int.
    if isinstance(value, bool):
        return {"boolValue": value}
    if isinstance(value, int):
        return {"intValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [_any_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_attributes(attributes: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Encode a mapping as a list of OTLP KeyValue objects."""
    return [{"key": key, "value": _any_value(value)} for key, value in attributes.items()]


def encode_span(span: "Span") -> dict[str, Any]:
    """Encode one finished span."""
    encoded: dict[str, Any] = {
        "traceId": span.context.trace_id_hex,
        "spanId": span.context.span_id_hex,
        "flags": span.context.trace_flags,
        "name": span.name,
        "kind": int(span.kind),
        "startTimeUnixNano": str(span.start_time_ns),
        "endTimeUnixNano": str(span.end_time_ns or span.start_time_ns),
        "attributes": encode_attributes(span.attributes),
        "events": [
            {
                "timeUnixNano": str(event.timestamp_ns),
                "name": event.name,
                "attributes": encode_attributes(event.attributes),
            }
            for event in span.events
        ],
        "status": {"code": int(span.status.code)},
    }
    if span.parent_span_id is not None:
        encoded["parentSpanId"] = format(span.parent_span_id, "016x")
    if span.context.trace_state:
        encoded["traceState"] = span.context.trace_state
    if span.status.description:
        encoded["status"]["message"] = span.status.description
    return encoded


def encode_spans(
    batch: Sequence["Span"],
    resource: Mapping[str, Any],
    scope_name: str,
    scope_version: str | None = None,
) -> dict[str, Any]:
    """Encode a batch as one ExportTraceServiceRequest.

    Args:
        batch: Finished spans.
        resource: Resource attributes (service.name, ...).
        scope_name: Instrumentation scope name.
        scope_version: Optional instrumentation scope version.

    Returns:
        JSON-serializable request body.
    """
    scope: dict[str, Any] = {"name": scope_name}
    if scope_version:
        scope["version"] = scope_version
    return {
        "resourceSpans": [
            {
                "resource": {"attributes": encode_attributes(resource)},
                "scopeSpans": [
                    {
                        "scope": scope,
                        "spans": [encode_span(span) for span in batch],
                    }
                ],
            }
        ]
    }

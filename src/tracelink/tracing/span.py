"""In-flight spans.

A Span is owned by the code path that started it until `end()` is called;
after that it is frozen and handed to the exporter exactly once.

Timing uses a wall-clock start timestamp plus a monotonic offset for the end,
so `end_time_ns >= start_time_ns` holds even if the wall clock jumps.

Usage:
    with tracer.start_span("handle request", parent=parent) as span:
        span.set_attribute("http.route", "/hello")
        span.add_event("cache_miss", {"key": "user:42"})
"""

import time
import traceback
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Callable, Mapping

from tracelink.telemetry import SPAN_ATTRIBUTE_INVALID, SPAN_MUTATION_AFTER_END, get_logger
from tracelink.tracing.context import TraceContext
from tracelink.tracing.types import AttributeValue, SpanKind, SpanStatus, StatusCode

log = get_logger(__name__)

_SCALAR_TYPES = (str, bool, int, float)


def _clean_value(value: Any) -> AttributeValue | None:
    """Return a storable attribute value, or None if the type is unsupported."""
    if isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, _SCALAR_TYPES) for v in value):
        return tuple(value)
    return None


@dataclass(frozen=True)
class SpanEvent:
    """A timestamped annotation recorded on a span.

    Attributes:
        name: Event name.
        timestamp_ns: Wall-clock time in nanoseconds since the epoch.
        attributes: Event attributes.
    """

    name: str
    timestamp_ns: int
    attributes: dict[str, AttributeValue] = field(default_factory=dict)


class Span:
    """One timed unit of work within a trace.

    Args:
        name: Operation name.
        context: This span's identity (trace_id, span_id, flags).
        parent_span_id: Span id of the parent, or None for a root span.
        kind: Role of the span.
        attributes: Initial attributes.
        on_end: Called once with the finished span (the exporter hand-off).
    """

    def __init__(
        self,
        name: str,
        context: TraceContext,
        parent_span_id: int | None = None,
        kind: SpanKind = SpanKind.INTERNAL,
        attributes: Mapping[str, Any] | None = None,
        on_end: Callable[["Span"], None] | None = None,
    ) -> None:  # noqa: D107
        self.name = name
        self.context = context
        self.parent_span_id = parent_span_id
        self.kind = kind
        self.start_time_ns: int = time.time_ns()
        self._start_monotonic_ns: int = time.monotonic_ns()
        self.end_time_ns: int | None = None
        self.attributes: dict[str, AttributeValue] = {}
        self.events: list[SpanEvent] = []
        self.status = SpanStatus()
        self.late_mutations = 0
        self._on_end = on_end
        self._ended = False
        if attributes:
            self.set_attributes(attributes)

    @property
    def trace_id(self) -> int:
        """Trace id shared with the rest of the trace."""
        return self.context.trace_id

    @property
    def span_id(self) -> int:
        """This span's id."""
        return self.context.span_id

    @property
    def is_recording(self) -> bool:
        """True until end() has been called."""
        return not self._ended

    @property
    def duration_ms(self) -> float | None:
        """Span duration in milliseconds, or None while still recording."""
        if self.end_time_ns is None:
            return None
        return round((self.end_time_ns - self.start_time_ns) / 1_000_000, 3)

    def _reject_after_end(self, operation: str) -> bool:
        """Record a mutation attempted on an ended span.

        Returns:
            True if the span has ended and the mutation must be skipped.
        """
        if not self._ended:
            return False
        self.late_mutations += 1
        log.warning(
            SPAN_MUTATION_AFTER_END,
            span_name=self.name,
            operation=operation,
            trace_id=self.context.trace_id_hex,
            span_id=self.context.span_id_hex,
        )
        return True

    def set_attribute(self, key: str, value: Any) -> None:
        """Set one attribute. Unsupported value types are dropped with a warning."""
        if self._reject_after_end("set_attribute"):
            return
        cleaned = _clean_value(value)
        if cleaned is None or not isinstance(key, str) or not key:
            log.warning(SPAN_ATTRIBUTE_INVALID, span_name=self.name, key=str(key))
            return
        self.attributes[key] = cleaned

    def set_attributes(self, attributes: Mapping[str, Any]) -> None:
        """Set several attributes, preserving the mapping's order."""
        for key, value in attributes.items():
            self.set_attribute(key, value)

    def add_event(self, name: str, attributes: Mapping[str, Any] | None = None) -> None:
        """Append a timestamped event.

        Args:
            name: Event name.
            attributes: Optional event attributes; unsupported values are dropped.
        """
        if self._reject_after_end("add_event"):
            return
        cleaned: dict[str, AttributeValue] = {}
        for key, value in (attributes or {}).items():
            clean = _clean_value(value)
            if clean is not None:
                cleaned[key] = clean
        self.events.append(SpanEvent(name=name, timestamp_ns=time.time_ns(), attributes=cleaned))

    def set_status(self, code: StatusCode, description: str | None = None) -> None:
        """Set the span status. Descriptions are kept only for ERROR."""
        if self._reject_after_end("set_status"):
            return
        self.status = SpanStatus(
            code=code, description=description if code is StatusCode.ERROR else None
        )

    def record_exception(
        self, exc: BaseException, attributes: Mapping[str, Any] | None = None
    ) -> None:
        """Record an exception as an `exception` event.

        Args:
            exc: The exception raised by the traced work.
            attributes: Extra event attributes.
        """
        event_attributes: dict[str, Any] = {
            "exception.type": type(exc).__qualname__,
            "exception.message": str(exc),
            "exception.stacktrace": "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            ),
        }
        if attributes:
            event_attributes.update(attributes)
        self.add_event("exception", event_attributes)

    def end(self) -> None:
        """Finish the span and hand it to the exporter.

        Idempotent: only the first call records the end time and enqueues.
        """
        if self._ended:
            return
        self._ended = True
        elapsed_ns = max(time.monotonic_ns() - self._start_monotonic_ns, 0)
        self.end_time_ns = self.start_time_ns + elapsed_ns
        if self._on_end is not None:
            self._on_end(self)

    def __enter__(self) -> "Span":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc is not None and self.is_recording:
            self.record_exception(exc)
            self.set_status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}")
        self.end()

    def to_dict(self) -> dict[str, Any]:
        """Export the span as a JSON-serializable dict."""
        return {
            "name": self.name,
            "trace_id": self.context.trace_id_hex,
            "span_id": self.context.span_id_hex,
            "parent_span_id": (
                format(self.parent_span_id, "016x") if self.parent_span_id is not None else None
            ),
            "kind": self.kind.name.lower(),
            "start_time_ns": self.start_time_ns,
            "end_time_ns": self.end_time_ns,
            "duration_ms": self.duration_ms,
            "attributes": dict(self.attributes),
            "events": [
                {
                    "name": event.name,
                    "timestamp_ns": event.timestamp_ns,
                    "attributes": dict(event.attributes),
                }
                for event in self.events
            ],
            "status": {
                "code": self.status.code.name.lower(),
                "description": self.status.description,
            },
        }

    def __repr__(self) -> str:  # noqa: D105
        state = "ended" if self._ended else "recording"
        return (
            f"Span(name={self.name!r}, trace_id={self.context.trace_id_hex}, "
            f"span_id={self.context.span_id_hex}, {state})"
        )

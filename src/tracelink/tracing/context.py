"""Trace context for request correlation and distributed tracing.

Identifiers follow the W3C Trace Context sizes: a 128-bit trace id and a
64-bit span id, rendered as 32 and 16 lowercase hex digits.
"""

import secrets
from dataclasses import dataclass

INVALID_TRACE_ID = 0
INVALID_SPAN_ID = 0

FLAG_SAMPLED = 0x01
DEFAULT_TRACE_FLAGS = FLAG_SAMPLED  # always-on sampling


def generate_trace_id() -> int:
    """Generate a cryptographically random, non-zero 128-bit trace id."""
    trace_id = secrets.randbits(128)
    while trace_id == INVALID_TRACE_ID:
        trace_id = secrets.randbits(128)
    return trace_id


def generate_span_id() -> int:
    """Generate a cryptographically random, non-zero 64-bit span id."""
    span_id = secrets.randbits(64)
    while span_id == INVALID_SPAN_ID:
        span_id = secrets.randbits(64)
    return span_id


@dataclass(frozen=True)
class TraceContext:
    """Immutable identity of one span within a trace.

    This is a frozen dataclass and should never be modified after creation.
    Components create new contexts using new_root() or child() rather than
    modifying an existing one.

    Attributes:
        trace_id: 128-bit trace identifier shared by every span of the trace.
        span_id: 64-bit identifier of the span this context belongs to.
        trace_flags: 8-bit flag set; bit 0 is "sampled".
        is_remote: True when the context was extracted from another process.
        trace_state: Opaque vendor data (the `tracestate` header), carried verbatim.
    """

    trace_id: int
    span_id: int
    trace_flags: int = DEFAULT_TRACE_FLAGS
    is_remote: bool = False
    trace_state: str = ""

    @classmethod
    def new_root(cls) -> "TraceContext":
        """Start a new trace.

        Returns:
            A sampled TraceContext with fresh trace and span ids.
        """
        return cls(trace_id=generate_trace_id(), span_id=generate_span_id())

    def child(self) -> "TraceContext":
        """Create the context of a child span within this trace.

        Returns:
            A local context with the same trace_id, flags and trace state and
            a freshly generated span_id.
        """
        return TraceContext(
            trace_id=self.trace_id,
            span_id=generate_span_id(),
            trace_flags=self.trace_flags,
            is_remote=False,
            trace_state=self.trace_state,
        )

    @property
    def trace_id_hex(self) -> str:
        """Trace id as 32 lowercase hex digits."""
        return format(self.trace_id, "032x")

    @property
    def span_id_hex(self) -> str:
        """Span id as 16 lowercase hex digits."""
        return format(self.span_id, "016x")

    @property
    def sampled(self) -> bool:
        """Whether the sampled flag is set."""
        return bool(self.trace_flags & FLAG_SAMPLED)

    @property
    def is_valid(self) -> bool:
        """Whether both ids are non-zero and within their bit widths."""
        return (
            0 < self.trace_id < (1 << 128)
            and 0 < self.span_id < (1 << 64)
            and 0 <= self.trace_flags <= 0xFF
        )

"""Shared tracing types and the tracing error hierarchy."""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Union

AttributeScalar = Union[str, bool, int, float]
AttributeValue = Union[AttributeScalar, Sequence[AttributeScalar]]


class SpanKind(int, Enum):
    """Role of a span in a trace (numbering follows OTLP)."""

    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class StatusCode(int, Enum):
    """Outcome of the unit of work a span describes (numbering follows OTLP)."""

    UNSET = 0
    OK = 1
    ERROR = 2


@dataclass(frozen=True)
class SpanStatus:
    """Span status with an optional human-readable description.

    Attributes:
        code: Status code.
        description: Only meaningful for ERROR; dropped for other codes.
    """

    code: StatusCode = StatusCode.UNSET
    description: str | None = None


# Error hierarchy


class TracingError(RuntimeError):
    """Base exception for tracing programming errors."""

    pass


class TracingNotInitializedError(TracingError):
    """Raised when spans are requested before init or after shutdown."""

    pass


class TracingAlreadyInitializedError(TracingError):
    """Raised when the tracer registry is initialized more than once."""

    pass


class SinkConfigError(TracingError):
    """Raised when a sink endpoint cannot be mapped to a span sink."""

    pass

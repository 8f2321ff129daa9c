"""W3C `traceparent` propagation over generic header carriers.

The codec only needs single-key lookup from the carrier (`get(key)`) for
extraction and item assignment (`carrier[key] = value`) for injection. Key
enumeration is never required, so carriers that cannot list their keys work.

Usage:
    propagator = TraceContextPropagator()
    parent = propagator.extract(request.headers)   # None for a fresh trace
    ...
    outgoing: dict[str, str] = {}
    propagator.inject(span.context, outgoing)
"""

import re
from typing import Any, Iterable, Iterator, Mapping, MutableMapping, Protocol

from tracelink.telemetry import TRACEPARENT_REJECTED, get_logger
from tracelink.tracing.context import TraceContext

log = get_logger(__name__)

TRACEPARENT_HEADER = "traceparent"
TRACESTATE_HEADER = "tracestate"

SUPPORTED_VERSION = "00"
# Lowercase hex of fixed widths: version-traceid-spanid-flags
_TRACEPARENT_RE = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")
_MAX_TRACESTATE_LENGTH = 512


class Getter(Protocol):
    """Carrier capability needed for extraction: single-key lookup."""

    def get(self, key: str, /) -> Any: ...


class Setter(Protocol):
    """Carrier capability needed for injection."""

    def __setitem__(self, key: str, value: str, /) -> None: ...


class HeaderCarrier(MutableMapping[str, str]):
    """Case-insensitive string header map.

    Wraps plain dicts (or broker message headers) so that lookups behave like
    HTTP headers. Keys keep the spelling they were first stored with.

    Example:
        >>> carrier = HeaderCarrier({"TraceParent": "00-...-01"})
        >>> carrier.get("traceparent")
        '00-...-01'
    """

    def __init__(self, headers: Mapping[str, str] | None = None) -> None:  # noqa: D107
        self._items: dict[str, tuple[str, str]] = {}
        if headers:
            for key, value in headers.items():
                self[key] = value

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, bytes | str]]) -> "HeaderCarrier":
        """Build a carrier from message-broker headers.

        Args:
            pairs: (key, value) tuples; bytes values are decoded as UTF-8.
                When a key repeats, the first value wins.

        Returns:
            New HeaderCarrier.
        """
        carrier = cls()
        for key, value in pairs:
            if key.lower() in carrier._items:
                continue
            if isinstance(value, bytes):
                value = value.decode("utf-8", errors="replace")
            carrier[key] = value
        return carrier

    def to_pairs(self) -> list[tuple[str, bytes]]:
        """Export headers as (key, UTF-8 bytes) tuples for message brokers."""
        return [(key, value.encode("utf-8")) for key, value in self._items.values()]

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()][1]

    def __setitem__(self, key: str, value: str) -> None:
        self._items[key.lower()] = (key, value)

    def __delitem__(self, key: str) -> None:
        del self._items[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:  # noqa: D105
        return f"HeaderCarrier({dict(self.items())!r})"


def _lookup(carrier: Getter, key: str) -> str | None:
    """Read one header value, tolerating multi-value and bytes carriers."""
    try:
        value = carrier.get(key)
    except (KeyError, LookupError, TypeError, ValueError):
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, bytes):
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    return value


def parse_traceparent(value: str) -> TraceContext | None:
    """Parse a `traceparent` value into a remote TraceContext.

    Args:
        value: Header value, e.g. "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01".

    Returns:
        The parsed context, or None if the value is malformed, uses an
        unsupported version, or carries an all-zero trace or span id.
    """
    match = _TRACEPARENT_RE.match(value.strip())
    if match is None:
        return None
    version, trace_hex, span_hex, flags_hex = match.groups()
    if version != SUPPORTED_VERSION:
        return None
    context = TraceContext(
        trace_id=int(trace_hex, 16),
        span_id=int(span_hex, 16),
        trace_flags=int(flags_hex, 16),
        is_remote=True,
    )
    if not context.is_valid:
        return None
    return context


def format_traceparent(context: TraceContext) -> str:
    """Render a context as a version-00 `traceparent` value."""
    return (
        f"{SUPPORTED_VERSION}-{context.trace_id_hex}-{context.span_id_hex}"
        f"-{context.trace_flags:02x}"
    )


class TraceContextPropagator:
    """Extracts and injects trace context using the `traceparent` header."""

    fields: tuple[str, ...] = (TRACEPARENT_HEADER, TRACESTATE_HEADER)

    def extract(self, carrier: Getter) -> TraceContext | None:
        """Extract a parent context from an inbound carrier.

        Never raises for bad input: a missing or malformed header simply
        means the request starts a new trace.

        Args:
            carrier: Any object offering `get(key)`.

        Returns:
            Remote TraceContext, or None when no valid context is present.
        """
        raw = _lookup(carrier, TRACEPARENT_HEADER)
        if raw is None:
            return None

        context = parse_traceparent(raw)
        if context is None:
            log.debug(TRACEPARENT_REJECTED, value=raw[:128])
            return None

        trace_state = _lookup(carrier, TRACESTATE_HEADER)
        if trace_state and len(trace_state) <= _MAX_TRACESTATE_LENGTH:
            context = TraceContext(
                trace_id=context.trace_id,
                span_id=context.span_id,
                trace_flags=context.trace_flags,
                is_remote=True,
                trace_state=trace_state.strip(),
            )
        return context

    def inject(self, context: TraceContext | None, carrier: Setter) -> None:
        """Write `context` into an outbound carrier.

        Invalid or missing contexts are not injected.

        Args:
            context: Context of the span the downstream work belongs to.
            carrier: Any object supporting item assignment.
        """
        if context is None or not context.is_valid:
            return
        carrier[TRACEPARENT_HEADER] = format_traceparent(context)
        if context.trace_state:
            carrier[TRACESTATE_HEADER] = context.trace_state

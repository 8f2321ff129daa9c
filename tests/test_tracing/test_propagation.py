"""Tests for traceparent parsing, formatting and header carriers."""

from typing import Any

import pytest

from tracelink.tracing.context import TraceContext
from tracelink.tracing.propagation import (
    HeaderCarrier,
    TraceContextPropagator,
    format_traceparent,
    parse_traceparent,
)

SAMPLE_TRACEPARENT = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"


class TestParseTraceparent:
    """Test decoding of traceparent values."""

    def test_parses_known_value(self) -> None:
        """Fields are decoded into a remote context."""
        ctx = parse_traceparent(SAMPLE_TRACEPARENT)

        assert ctx is not None
        assert ctx.trace_id_hex == "4bf92f3577b34da6a3ce929d0e0e4736"
        assert ctx.span_id_hex == "00f067aa0ba902b7"
        assert ctx.trace_flags == 0x01
        assert ctx.is_remote

    @pytest.mark.parametrize(
        "value",
        [
            SAMPLE_TRACEPARENT,
            "00-00000000000000000000000000000001-0000000000000001-00",
            "00-ffffffffffffffffffffffffffffffff-ffffffffffffffff-ff",
            "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-02",
        ],
    )
    def test_format_round_trips(self, value: str) -> None:
        """Formatting a parsed value reproduces it exactly."""
        ctx = parse_traceparent(value)

        assert ctx is not None
        assert format_traceparent(ctx) == value

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "garbage",
            "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7",
            "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01-extra",
            "00-4BF92F3577B34DA6A3CE929D0E0E4736-00F067AA0BA902B7-01",
            "00-4bf92f3577b34da6a3ce929d0e0e473-00f067aa0ba902b7-01",
            "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b-01",
            "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-1",
            "00-00000000000000000000000000000000-00f067aa0ba902b7-01",
            "00-4bf92f3577b34da6a3ce929d0e0e4736-0000000000000000-01",
            "01-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
            "ff-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
            "00_4bf92f3577b34da6a3ce929d0e0e4736_00f067aa0ba902b7_01",
            "zz-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01",
        ],
    )
    def test_rejects_malformed_values(self, value: str) -> None:
        """Malformed, unsupported-version and all-zero values yield None."""
        assert parse_traceparent(value) is None

    def test_tolerates_surrounding_whitespace(self) -> None:
        """Whitespace around the header value is ignored."""
        assert parse_traceparent(f"  {SAMPLE_TRACEPARENT} ") is not None


class TestHeaderCarrier:
    """Test the case-insensitive header map."""

    def test_lookup_is_case_insensitive(self) -> None:
        """Keys match regardless of case and keep their original spelling."""
        carrier = HeaderCarrier({"TraceParent": SAMPLE_TRACEPARENT})

        assert carrier.get("traceparent") == SAMPLE_TRACEPARENT
        assert carrier["TRACEPARENT"] == SAMPLE_TRACEPARENT
        assert list(carrier) == ["TraceParent"]

    def test_assignment_replaces_existing_key(self) -> None:
        """Setting a key in another case replaces the value."""
        carrier = HeaderCarrier({"X-Request-Id": "a"})
        carrier["x-request-id"] = "b"

        assert len(carrier) == 1
        assert carrier["X-REQUEST-ID"] == "b"

    def test_from_pairs_decodes_bytes_and_keeps_first(self) -> None:
        """Broker headers are decoded; a repeated key keeps its first value."""
        carrier = HeaderCarrier.from_pairs(
            [("traceparent", SAMPLE_TRACEPARENT.encode()), ("TRACEPARENT", b"ignored")]
        )

        assert carrier["traceparent"] == SAMPLE_TRACEPARENT
        assert len(carrier) == 1

    def test_to_pairs_encodes_utf8(self) -> None:
        """Pairs are exported with bytes values."""
        carrier = HeaderCarrier({"traceparent": SAMPLE_TRACEPARENT})

        assert carrier.to_pairs() == [("traceparent", SAMPLE_TRACEPARENT.encode("utf-8"))]


class _LookupOnlyCarrier:
    """Carrier that supports get() but not iteration."""

    def __init__(self, values: dict[str, Any]) -> None:
        self._values = values

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def __iter__(self) -> Any:
        raise TypeError("keys cannot be enumerated")


class _BrokenCarrier:
    """Carrier whose lookup always raises."""

    def get(self, key: str) -> Any:
        raise KeyError(key)


class TestTraceContextPropagator:
    """Test extraction from and injection into carriers."""

    @pytest.fixture
    def propagator(self) -> TraceContextPropagator:
        return TraceContextPropagator()

    def test_fields(self, propagator: TraceContextPropagator) -> None:
        """The propagator advertises the headers it reads and writes."""
        assert propagator.fields == ("traceparent", "tracestate")

    def test_extracts_from_plain_dict(self, propagator: TraceContextPropagator) -> None:
        """A plain dict works as an inbound carrier."""
        ctx = propagator.extract({"traceparent": SAMPLE_TRACEPARENT})

        assert ctx is not None
        assert ctx.trace_id_hex == "4bf92f3577b34da6a3ce929d0e0e4736"

    def test_missing_header_starts_new_trace(self, propagator: TraceContextPropagator) -> None:
        """No header means no parent."""
        assert propagator.extract({}) is None
        assert propagator.extract(HeaderCarrier()) is None

    def test_malformed_header_never_raises(self, propagator: TraceContextPropagator) -> None:
        """Bad input is treated as absent."""
        assert propagator.extract({"traceparent": "not-a-trace"}) is None
        assert propagator.extract({"traceparent": 12345}) is None
        assert propagator.extract(_BrokenCarrier()) is None

    def test_extracts_from_lookup_only_carrier(self, propagator: TraceContextPropagator) -> None:
        """Extraction only needs single-key lookup."""
        ctx = propagator.extract(_LookupOnlyCarrier({"traceparent": SAMPLE_TRACEPARENT}))

        assert ctx is not None

    def test_extracts_multi_value_and_bytes(self, propagator: TraceContextPropagator) -> None:
        """List-valued and bytes-valued headers use their first value."""
        assert propagator.extract({"traceparent": [SAMPLE_TRACEPARENT, "other"]}) is not None
        assert propagator.extract({"traceparent": SAMPLE_TRACEPARENT.encode()}) is not None
        assert propagator.extract({"traceparent": []}) is None

    def test_extracts_tracestate(self, propagator: TraceContextPropagator) -> None:
        """tracestate is carried verbatim alongside a valid traceparent."""
        ctx = propagator.extract(
            {"traceparent": SAMPLE_TRACEPARENT, "tracestate": "congo=t61rcWkgMzE"}
        )

        assert ctx is not None
        assert ctx.trace_state == "congo=t61rcWkgMzE"

    def test_ignores_oversized_tracestate(self, propagator: TraceContextPropagator) -> None:
        """An oversized tracestate is dropped but the parent is kept."""
        ctx = propagator.extract({"traceparent": SAMPLE_TRACEPARENT, "tracestate": "a" * 600})

        assert ctx is not None
        assert ctx.trace_state == ""

    def test_inject_writes_traceparent(self, propagator: TraceContextPropagator) -> None:
        """Injection writes the formatted header."""
        ctx = TraceContext(trace_id=0x4BF92F3577B34DA6A3CE929D0E0E4736, span_id=0x00F067AA0BA902B7)
        carrier: dict[str, str] = {}

        propagator.inject(ctx, carrier)

        assert carrier == {"traceparent": SAMPLE_TRACEPARENT}

    def test_inject_writes_tracestate(self, propagator: TraceContextPropagator) -> None:
        """A non-empty trace state is propagated."""
        ctx = TraceContext(trace_id=1, span_id=2, trace_state="vendor=value")
        carrier = HeaderCarrier()

        propagator.inject(ctx, carrier)

        assert carrier["tracestate"] == "vendor=value"

    def test_inject_skips_invalid_context(self, propagator: TraceContextPropagator) -> None:
        """Invalid or missing contexts are not written."""
        carrier: dict[str, str] = {}

        propagator.inject(None, carrier)
        propagator.inject(TraceContext(trace_id=0, span_id=1), carrier)

        assert carrier == {}

    def test_extract_then_inject_round_trips(self, propagator: TraceContextPropagator) -> None:
        """Injecting an extracted context reproduces the inbound header."""
        ctx = propagator.extract(HeaderCarrier({"Traceparent": SAMPLE_TRACEPARENT}))
        outgoing = HeaderCarrier()

        propagator.inject(ctx, outgoing)

        assert outgoing["traceparent"] == SAMPLE_TRACEPARENT

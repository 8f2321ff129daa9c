"""Tests for log/trace correlation scopes."""

import asyncio
import threading

import pytest
import structlog
from structlog.testing import LogCapture

from tracelink.tracing.correlation import (
    add_trace_context,
    bind,
    current_context,
    current_span,
)
from tracelink.tracing.propagation import HeaderCarrier
from tracelink.tracing.span import Span
from tracelink.tracing.tracer import Tracer

SAMPLE_TRACEPARENT = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"


class TestBind:
    """Test binding and releasing spans."""

    def test_log_records_carry_bound_ids(self, tracer: Tracer, captured_logs: LogCapture) -> None:
        """Records inside the scope carry the span's ids; records outside do not."""
        span = tracer.start_span("op")
        log = structlog.get_logger()

        with bind(span):
            log.info("inside")
        log.info("outside")

        inside, outside = captured_logs.entries
        assert inside["trace_id"] == span.context.trace_id_hex
        assert inside["span_id"] == span.context.span_id_hex
        assert "trace_id" not in outside
        assert "span_id" not in outside

    def test_nested_scopes_restore_outer_binding(
        self, tracer: Tracer, captured_logs: LogCapture
    ) -> None:
        """Releasing an inner scope restores the outer span's ids."""
        outer = tracer.start_span("outer")
        inner = tracer.start_span("inner", outer.context)
        log = structlog.get_logger()

        with bind(outer):
            with bind(inner):
                log.info("inner_work")
                assert current_span() is inner
            log.info("outer_work")
            assert current_span() is outer

        inner_entry, outer_entry = captured_logs.entries
        assert inner_entry["span_id"] == inner.context.span_id_hex
        assert outer_entry["span_id"] == outer.context.span_id_hex
        assert inner_entry["trace_id"] == outer_entry["trace_id"]

    def test_release_is_idempotent(self, tracer: Tracer) -> None:
        """A second release is a no-op."""
        scope = bind(tracer.start_span("op"))

        assert scope.active
        scope.release()
        scope.release()

        assert not scope.active
        assert current_span() is None

    def test_scope_released_on_exception(self, tracer: Tracer) -> None:
        """Leaving the block by an exception still releases the binding."""
        span = tracer.start_span("op")

        with pytest.raises(RuntimeError):
            with bind(span):
                raise RuntimeError("boom")

        assert current_span() is None
        assert structlog.contextvars.get_contextvars() == {}

    def test_current_context(self, tracer: Tracer) -> None:
        """current_context returns the bound span's identity."""
        span = tracer.start_span("op")
        assert current_context() is None

        with bind(span):
            assert current_context() == span.context

    def test_add_trace_context_processor(self, tracer: Tracer) -> None:
        """The processor adds ids without overwriting explicit values."""
        span = tracer.start_span("op")

        with bind(span):
            added = add_trace_context(None, "info", {"event": "x"})
            kept = add_trace_context(None, "info", {"event": "x", "trace_id": "explicit"})

        assert added["span_id"] == span.context.span_id_hex
        assert kept["trace_id"] == "explicit"
        assert add_trace_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestIsolation:
    """Test that scopes do not leak between concurrent units of work."""

    def test_threads_do_not_see_each_others_scope(
        self, tracer: Tracer, captured_logs: LogCapture
    ) -> None:
        """Each thread logs with its own span ids."""
        spans: dict[str, Span] = {}
        both_bound = threading.Barrier(2)

        def handle(name: str) -> None:
            span = tracer.start_span(name)
            spans[name] = span
            with bind(span):
                both_bound.wait(timeout=5)
                structlog.get_logger().info("work", worker=name)

        threads = [threading.Thread(target=handle, args=(name,)) for name in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        by_worker = {entry["worker"]: entry for entry in captured_logs.entries}
        for name in ("a", "b"):
            assert by_worker[name]["span_id"] == spans[name].context.span_id_hex
        assert current_span() is None

    @pytest.mark.asyncio
    async def test_tasks_do_not_see_each_others_scope(
        self, tracer: Tracer, captured_logs: LogCapture
    ) -> None:
        """Interleaved asyncio tasks log with their own span ids."""

        async def handle(name: str) -> Span:
            span = tracer.start_span(name)
            with bind(span):
                await asyncio.sleep(0.01)
                structlog.get_logger().info("work", task=name)
            span.end()
            return span

        span_a, span_b = await asyncio.gather(handle("a"), handle("b"))

        by_task = {entry["task"]: entry for entry in captured_logs.entries}
        assert by_task["a"]["span_id"] == span_a.context.span_id_hex
        assert by_task["b"]["span_id"] == span_b.context.span_id_hex
        assert by_task["a"]["trace_id"] != by_task["b"]["trace_id"]


class TestStartAsCurrentSpan:
    """Test Tracer.start_as_current_span and current-span injection."""

    def test_nested_spans_inherit_current_span(
        self, tracer: Tracer, finished_spans: list[Span]
    ) -> None:
        """A nested span becomes a child of the enclosing one."""
        with tracer.start_as_current_span("outer") as outer:
            with tracer.start_as_current_span("inner") as inner:
                assert current_span() is inner

        assert inner.parent_span_id == outer.span_id
        assert inner.trace_id == outer.trace_id
        assert finished_spans == [inner, outer]
        assert current_span() is None

    def test_explicit_none_parent_starts_new_trace(self, tracer: Tracer) -> None:
        """Passing parent=None ignores the current span."""
        with tracer.start_as_current_span("outer") as outer:
            with tracer.start_as_current_span("detached", None) as detached:
                pass

        assert detached.parent_span_id is None
        assert detached.trace_id != outer.trace_id

    def test_inject_defaults_to_current_span(self, tracer: Tracer) -> None:
        """inject() without a context propagates the current span."""
        outgoing = HeaderCarrier()

        with tracer.start_as_current_span("client call") as span:
            tracer.inject(outgoing)

        assert outgoing["traceparent"] == (
            f"00-{span.context.trace_id_hex}-{span.context.span_id_hex}-01"
        )

    def test_inject_outside_any_span_writes_nothing(self, tracer: Tracer) -> None:
        """Without a current span there is nothing to propagate."""
        outgoing: dict[str, str] = {}
        tracer.inject(outgoing)

        assert outgoing == {}

    def test_continues_inbound_trace_with_correlated_logs(
        self, tracer: Tracer, finished_spans: list[Span], captured_logs: LogCapture
    ) -> None:
        """An inbound traceparent is continued and its trace id reaches the logs."""
        parent = tracer.extract({"traceparent": SAMPLE_TRACEPARENT})

        with tracer.start_as_current_span("Handle hello request", parent) as span:
            structlog.get_logger().info("handling_request")

        (entry,) = captured_logs.entries
        assert entry["trace_id"] == "4bf92f3577b34da6a3ce929d0e0e4736"
        assert entry["span_id"] == span.context.span_id_hex
        assert span.parent_span_id == 0x00F067AA0BA902B7
        assert finished_spans == [span]

    def test_exception_is_recorded_and_reraised(
        self, tracer: Tracer, finished_spans: list[Span]
    ) -> None:
        """Failures propagate and the span is still ended and released."""
        with pytest.raises(KeyError):
            with tracer.start_as_current_span("op"):
                raise KeyError("missing")

        (span,) = finished_spans
        assert span.status.code.name == "ERROR"
        assert current_span() is None

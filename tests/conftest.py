"""Shared fixtures for tracelink tests."""

import time
from typing import Callable, Generator

import pytest
import structlog
from structlog.testing import LogCapture

from tracelink.config.settings import TracingConfig
from tracelink.tracing.span import Span
from tracelink.tracing.tracer import Tracer


@pytest.fixture
def captured_logs() -> Generator[LogCapture, None, None]:
    """Capture structlog event dicts, with contextvars merged in."""
    capture = LogCapture()
    structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])
    try:
        yield capture
    finally:
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()


@pytest.fixture
def finished_spans() -> list[Span]:
    """Spans handed over by the tracer fixture on end()."""
    return []


@pytest.fixture
def tracer(finished_spans: list[Span]) -> Tracer:
    """Tracer that collects finished spans in a list instead of exporting."""
    return Tracer("test-service", on_end=finished_spans.append)


@pytest.fixture
def make_span() -> Callable[..., Span]:
    """Factory for ended spans that are not attached to any exporter."""
    detached = Tracer("test-service", on_end=lambda _: None)

    def _make(name: str = "operation") -> Span:
        span = detached.start_span(name)
        span.end()
        return span

    return _make


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a condition until it holds or the timeout passes."""

    def _wait(condition: Callable[[], bool], timeout: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(0.01)
        return condition()

    return _wait


@pytest.fixture
def fast_config() -> TracingConfig:
    """Settings with short timers so export tests finish quickly."""
    return TracingConfig(
        export_max_batch_size=8,
        export_schedule_delay_seconds=0.05,
        export_max_retries=1,
        export_backoff_initial_seconds=0.01,
        export_backoff_max_seconds=0.02,
        shutdown_timeout_seconds=2.0,
    )

"""Process-wide tracer registry.

Holds the propagator, the span-creation authority (Tracer) and the exporter.
It is initialized exactly once before the first request is served and shut
down (final flush) when the process stops.

Usage:
    registry = TracerRegistry()
    tracer = registry.init("checkout", "http://otel-collector:4318")
    ...
    registry.shutdown()

or through the module-level default registry:
    init_tracing("checkout", "http://otel-collector:4318")
    tracer = get_tracer()
    shutdown_tracing()
"""

import platform
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any

from tracelink.export.exporter import BatchSpanExporter
from tracelink.export.sinks import SpanSink, create_sink
from tracelink.telemetry import (
    TRACER_INITIALIZED,
    TRACER_SHUTDOWN_COMPLETED,
    TRACER_SHUTDOWN_STARTED,
    configure_logging,
    get_logger,
)
from tracelink.tracing.propagation import TraceContextPropagator
from tracelink.tracing.tracer import Tracer
from tracelink.tracing.types import (
    SinkConfigError,
    TracingAlreadyInitializedError,
    TracingNotInitializedError,
)

if TYPE_CHECKING:
    from tracelink.config.settings import TracingConfig

log = get_logger(__name__)


class RegistryState(str, Enum):
    """Registry lifecycle."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    SHUT_DOWN = "shut_down"


def build_resource(service_name: str) -> dict[str, Any]:
    """Resource attributes describing this process."""
    return {
        "service.name": service_name,
        "telemetry.sdk.name": "tracelink",
        "telemetry.sdk.language": "python",
        "host.name": platform.node(),
    }


class TracerRegistry:
    """Owns the tracing components for one process."""

    def __init__(self) -> None:  # noqa: D107
        self._lock = threading.Lock()
        self._state = RegistryState.UNINITIALIZED
        self._tracer: Tracer | None = None
        self._exporter: BatchSpanExporter | None = None
        self._propagator: TraceContextPropagator | None = None

    @property
    def state(self) -> RegistryState:
        """Current lifecycle state."""
        return self._state

    def init(
        self,
        service_name: str,
        sink_endpoint: "str | SpanSink",
        *,
        config: "TracingConfig | None" = None,
    ) -> Tracer:
        """Build the propagator, exporter and tracer, and start exporting.

        Args:
            service_name: Reported as the service.name resource attribute.
            sink_endpoint: Endpoint string (see create_sink) or a SpanSink.
            config: Exporter tunables and logging settings; defaults to the
                settings singleton.

        Returns:
            The shared Tracer.

        Raises:
            TracingAlreadyInitializedError: On any second call.
            SinkConfigError: If the endpoint cannot be mapped to a sink.
        """
        with self._lock:
            if self._state is not RegistryState.UNINITIALIZED:
                raise TracingAlreadyInitializedError(
                    f"tracer registry already initialized (state={self._state.value})"
                )

            if config is None:
                from tracelink.config.settings import get_settings  # noqa: PLC0415

                config = get_settings()

            resource = build_resource(service_name)
            if isinstance(sink_endpoint, SpanSink):
                sink = sink_endpoint
            elif isinstance(sink_endpoint, str):
                sink = create_sink(sink_endpoint, resource, config)
            else:
                raise SinkConfigError(f"unsupported sink: {sink_endpoint!r}")

            exporter = BatchSpanExporter(
                sink,
                max_batch_size=config.export_max_batch_size,
                schedule_delay_seconds=config.export_schedule_delay_seconds,
                max_queue_size=config.export_max_queue_size,
                max_retries=config.export_max_retries,
                backoff_initial_seconds=config.export_backoff_initial_seconds,
                backoff_max_seconds=config.export_backoff_max_seconds,
                shutdown_timeout_seconds=config.shutdown_timeout_seconds,
                circuit_breaker_threshold=config.export_circuit_breaker_threshold,
                circuit_breaker_cooldown_seconds=config.export_circuit_breaker_cooldown_seconds,
            )
            propagator = TraceContextPropagator()
            tracer = Tracer(service_name, on_end=exporter.enqueue, propagator=propagator)
            exporter.start()

            self._exporter = exporter
            self._propagator = propagator
            self._tracer = tracer
            self._state = RegistryState.ACTIVE

        # Settings may come from .env files that were not loaded when logging
        # was first configured from the environment.
        configure_logging(config)
        log.info(
            TRACER_INITIALIZED,
            service_name=service_name,
            sink=type(sink).__name__,
        )
        return tracer

    def current(self) -> Tracer:
        """Return the shared Tracer.

        Raises:
            TracingNotInitializedError: Before init() or after shutdown().
        """
        tracer = self._tracer
        if self._state is not RegistryState.ACTIVE or tracer is None:
            raise TracingNotInitializedError(
                f"tracer requested while registry is {self._state.value}; call init() first"
            )
        return tracer

    @property
    def propagator(self) -> TraceContextPropagator:
        """The active propagator.

        Raises:
            TracingNotInitializedError: Before init() or after shutdown().
        """
        return self.current().propagator

    @property
    def exporter(self) -> BatchSpanExporter | None:
        """The exporter, once initialized."""
        return self._exporter

    def shutdown(self, timeout: float | None = None) -> bool:
        """Flush pending spans and stop the exporter.

        Idempotent; never blocks beyond the exporter's grace period.

        Args:
            timeout: Grace period for the final flush (default from config).

        Returns:
            True if all pending spans were handled (or nothing was initialized).
        """
        with self._lock:
            if self._state is not RegistryState.ACTIVE:
                return True
            self._state = RegistryState.SHUT_DOWN
            exporter = self._exporter
            self._tracer = None

        log.info(TRACER_SHUTDOWN_STARTED)
        completed = exporter.shutdown(timeout) if exporter is not None else True
        stats = exporter.stats() if exporter is not None else None
        log.info(
            TRACER_SHUTDOWN_COMPLETED,
            completed=completed,
            exported=stats.exported if stats else 0,
            dropped=stats.dropped if stats else 0,
        )
        return completed


_default_registry = TracerRegistry()


def get_registry() -> TracerRegistry:
    """Return the process-wide default registry."""
    return _default_registry


def init_tracing(
    service_name: str | None = None,
    sink_endpoint: "str | SpanSink | None" = None,
    *,
    config: "TracingConfig | None" = None,
) -> Tracer:
    """Initialize the default registry.

    Missing arguments are read from settings (`TRACELINK_SERVICE_NAME`,
    `OTLP_ENDPOINT`).

    Raises:
        TracingAlreadyInitializedError: On any second call.
        SinkConfigError: If no sink endpoint is configured.
    """
    if config is None:
        from tracelink.config.settings import get_settings  # noqa: PLC0415

        config = get_settings()
    service_name = service_name or config.service_name
    sink = sink_endpoint if sink_endpoint is not None else config.sink_endpoint
    if sink is None:
        raise SinkConfigError("no sink endpoint given and OTLP_ENDPOINT is not set")
    return _default_registry.init(service_name, sink, config=config)


def get_tracer() -> Tracer:
    """Return the default registry's Tracer."""
    return _default_registry.current()


def get_propagator() -> TraceContextPropagator:
    """Return the default registry's propagator."""
    return _default_registry.propagator


def shutdown_tracing(timeout: float | None = None) -> bool:
    """Shut down the default registry (final flush)."""
    return _default_registry.shutdown(timeout)

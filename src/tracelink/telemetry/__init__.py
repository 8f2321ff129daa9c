"""Structured logging for tracelink.

This module provides:
- Structured logging via structlog, correlated with the active span
- Semantic event constants
"""

from tracelink.telemetry.events import (
    EXPORT_ATTEMPT_FAILED,
    EXPORT_BATCH_DROPPED,
    EXPORT_BATCH_SENT,
    EXPORT_CIRCUIT_OPENED,
    EXPORT_QUEUE_FULL,
    EXPORT_SHUTDOWN_TIMEOUT,
    EXPORTER_STARTED,
    EXPORTER_STOPPED,
    SINK_REQUEST_FAILED,
    SINK_SHUTDOWN_FAILED,
    SPAN_ATTRIBUTE_INVALID,
    SPAN_MUTATION_AFTER_END,
    TRACEPARENT_REJECTED,
    TRACER_INITIALIZED,
    TRACER_SHUTDOWN_COMPLETED,
    TRACER_SHUTDOWN_STARTED,
)
from tracelink.telemetry.logger import configure_logging, get_logger, shutdown_logging

__all__ = [
    "get_logger",
    "configure_logging",
    "shutdown_logging",
    # Event constants
    "TRACER_INITIALIZED",
    "TRACER_SHUTDOWN_STARTED",
    "TRACER_SHUTDOWN_COMPLETED",
    "SPAN_MUTATION_AFTER_END",
    "SPAN_ATTRIBUTE_INVALID",
    "TRACEPARENT_REJECTED",
    "EXPORTER_STARTED",
    "EXPORT_BATCH_SENT",
    "EXPORT_ATTEMPT_FAILED",
    "EXPORT_BATCH_DROPPED",
    "EXPORT_QUEUE_FULL",
    "EXPORT_CIRCUIT_OPENED",
    "EXPORT_SHUTDOWN_TIMEOUT",
    "EXPORTER_STOPPED",
    "SINK_REQUEST_FAILED",
    "SINK_SHUTDOWN_FAILED",
]

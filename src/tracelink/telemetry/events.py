"""Semantic event constants for structured logging.

All log events should use these constants rather than magic strings to ensure
consistency and enable reliable querying and analysis.
"""

# Registry lifecycle events
TRACER_INITIALIZED = "tracer_initialized"
TRACER_SHUTDOWN_STARTED = "tracer_shutdown_started"
TRACER_SHUTDOWN_COMPLETED = "tracer_shutdown_completed"

# Span events
SPAN_MUTATION_AFTER_END = "span_mutation_after_end"
SPAN_ATTRIBUTE_INVALID = "span_attribute_invalid"

# Propagation events
TRACEPARENT_REJECTED = "traceparent_rejected"

# Exporter events
EXPORTER_STARTED = "exporter_started"
EXPORT_BATCH_SENT = "export_batch_sent"
EXPORT_ATTEMPT_FAILED = "export_attempt_failed"
EXPORT_BATCH_DROPPED = "export_batch_dropped"
EXPORT_QUEUE_FULL = "export_queue_full"
EXPORT_CIRCUIT_OPENED = "export_circuit_opened"
EXPORT_SHUTDOWN_TIMEOUT = "export_shutdown_timeout"
EXPORTER_STOPPED = "exporter_stopped"

# Sink events
SINK_REQUEST_FAILED = "sink_request_failed"
SINK_SHUTDOWN_FAILED = "sink_shutdown_failed"

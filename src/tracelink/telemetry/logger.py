"""Structured logging configuration using structlog.

This module configures structlog for structured JSON logging with:
- JSON or pretty-printed console output
- Optional rotating JSON-lines file output
- UTC timestamps
- Trace correlation (trace_id/span_id from the active span scope)
- Component and event tracking
- Handlers running on a listener thread, so emitting a record never waits on I/O
"""

import atexit
import logging
import logging.handlers
import pathlib
import queue
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from tracelink.config.settings import TracingConfig

_listener: logging.handlers.QueueListener | None = None
_applied_settings: tuple[str, str, pathlib.Path | None] | None = None


def _get_log_level() -> str:
    """Get log level from configuration.

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    # Bootstrap from environment to avoid circular imports during startup.
    from tracelink.config.bootstrap import get_bootstrap_log_level  # noqa: PLC0415

    return get_bootstrap_log_level()


def _get_log_format() -> str:
    """Get log format ("json" or "console") from configuration."""
    from tracelink.config.bootstrap import get_bootstrap_log_format  # noqa: PLC0415

    return get_bootstrap_log_format()


def _get_log_dir() -> pathlib.Path | None:
    """Get log directory path.

    Returns:
        Path to the log directory, or None when file logging is disabled.
    """
    from tracelink.config.bootstrap import get_bootstrap_log_dir  # noqa: PLC0415

    return get_bootstrap_log_dir()


def _add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add UTC timestamp to log event.

    Args:
        logger: The logger instance.
        method_name: The log method name (info, error, etc.).
        event_dict: The event dictionary.

    Returns:
        Event dictionary with timestamp added.
    """
    # Foreign records are rendered later on the listener thread; keep the
    # time the record was created.
    record = event_dict.get("_record")
    created = record.created if record is not None else datetime.now(timezone.utc).timestamp()
    event_dict["timestamp"] = datetime.fromtimestamp(created, timezone.utc).isoformat()
    return event_dict


def _add_component(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add component name to a foreign (stdlib) log event."""
    # ProcessorFormatter passes no logger for foreign records; fall back to
    # the record's logger name stored by add_logger_name.
    logger_name = getattr(logger, "name", None) or event_dict.get("logger") or ""
    event_dict["component"] = logger_name.split(".")[-1] or "unknown"
    return event_dict


def _add_component_from_event_dict(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Add component name to log event from event_dict logger name.

    Works with structlog's event_dict which contains the logger name after
    the add_logger_name processor runs.

    Args:
        logger: The structlog logger instance.
        method_name: The log method name (info, error, etc.).
        event_dict: The event dictionary.

    Returns:
        Event dictionary with component added.
    """
    # e.g. "tracelink.export.exporter" -> "exporter"
    logger_name = event_dict.get("logger", "")
    event_dict.setdefault("component", logger_name.split(".")[-1] or "unknown")
    return event_dict


class _ContextCapturingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that leaves formatting to the listener thread.

    structlog records keep their event dict in ``record.msg``. Foreign records
    get the emitting thread's context variables and span ids attached, since
    the listener thread cannot see them.
    """

    def __init__(self, log_queue: "queue.SimpleQueue[Any]") -> None:  # noqa: D107
        from tracelink.tracing.correlation import add_trace_context  # noqa: PLC0415

        super().__init__(log_queue)
        self._add_trace_context = add_trace_context

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        """Return the record unformatted, with the caller's context captured."""
        if not isinstance(record.msg, dict):
            record.msg = record.getMessage()
            record.args = None
            context = structlog.contextvars.get_contextvars()
            record.tracelink_context = self._add_trace_context(None, "", context)
        return record


def _foreign_pre_chain() -> list[Any]:
    """Processors applied to records emitted through plain stdlib logging."""
    from tracelink.tracing.correlation import add_trace_context  # noqa: PLC0415

    def merge_emitter_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        captured = getattr(event_dict.get("_record"), "tracelink_context", None)
        if captured is None:
            # Formatted on the emitting thread (no listener running).
            event_dict = structlog.contextvars.merge_contextvars(logger, method_name, event_dict)
            return add_trace_context(logger, method_name, event_dict)
        for key, value in captured.items():
            event_dict.setdefault(key, value)
        return event_dict

    return [
        merge_emitter_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_timestamp,
        _add_component,
    ]


def _configure_file_handler(log_dir: pathlib.Path) -> logging.handlers.RotatingFileHandler:
    """Configure rotating file handler for JSON logs.

    Args:
        log_dir: Directory for log files.

    Returns:
        Configured RotatingFileHandler.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / "current.jsonl"
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_file),
        maxBytes=100 * 1024 * 1024,  # 100 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=_foreign_pre_chain(),
        )
    )
    return handler


def _configure_console_handler(log_format: str) -> logging.StreamHandler[Any]:
    """Configure console handler.

    Args:
        log_format: "json" for one JSON object per line, "console" for
            pretty-printed output.

    Returns:
        Configured StreamHandler.
    """
    handler = logging.StreamHandler(sys.stderr)

    renderer: Any
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_foreign_pre_chain(),
        )
    )
    return handler


def configure_logging(config: "TracingConfig | None" = None) -> None:
    """Configure structlog for structured logging.

    This function is called at application startup from environment
    variables, and again with the loaded settings when tracing is
    initialized (settings may come from .env files). Re-applying unchanged
    settings is a no-op. Every record emitted while a span scope is bound
    carries that span's trace_id and span_id.

    The root logger only enqueues records; the console and file handlers
    run on a listener thread. Call shutdown_logging() to drain it.

    Args:
        config: Settings to take log_level, log_format and log_dir from.
            Defaults to the bootstrap environment values.
    """
    global _listener, _applied_settings
    from tracelink.tracing.correlation import add_trace_context  # noqa: PLC0415

    if config is not None:
        settings = (config.log_level, config.log_format, config.log_dir)
    else:
        settings = (_get_log_level(), _get_log_format(), _get_log_dir())
    if _listener is not None and settings == _applied_settings and structlog.is_configured():
        return
    log_level, log_format, log_dir = settings

    shutdown_logging()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    # Silence noisy third-party loggers (the sinks use these clients).
    logging.getLogger("elastic_transport").setLevel(logging.ERROR)
    logging.getLogger("elasticsearch").setLevel(logging.ERROR)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    configured_level = getattr(logging, log_level, logging.INFO)
    handlers: list[logging.Handler] = []

    if log_dir is not None:
        file_handler = _configure_file_handler(log_dir)
        file_handler.setLevel(logging.INFO)
        handlers.append(file_handler)

    console_handler = _configure_console_handler(log_format)
    console_handler.setLevel(configured_level)
    handlers.append(console_handler)

    log_queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
    root_logger.addHandler(_ContextCapturingQueueHandler(log_queue))
    _listener = logging.handlers.QueueListener(log_queue, *handlers, respect_handler_level=True)
    _listener.start()
    _applied_settings = settings

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            _add_component_from_event_dict,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def shutdown_logging() -> None:
    """Drain queued records and stop the listener thread.

    The handlers are attached to the root logger directly afterwards, so
    records emitted later are still written (synchronously). Safe to call
    more than once; registered to run at interpreter exit.
    """
    global _listener, _applied_settings
    listener = _listener
    if listener is None:
        return
    _listener = None
    _applied_settings = None
    listener.stop()

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, _ContextCapturingQueueHandler):
            root_logger.removeHandler(handler)
    for handler in listener.handlers:
        root_logger.addHandler(handler)


atexit.register(shutdown_logging)


def get_logger(name: str) -> Any:  # Returns structlog.stdlib.BoundLogger
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module).

    Returns:
        Configured structlog logger instance.

    Example:
        >>> from tracelink.telemetry import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("request_handled", path="/hello")
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(name)

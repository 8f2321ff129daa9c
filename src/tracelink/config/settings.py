"""Tracing configuration settings.

This module provides the TracingConfig class and settings singleton.
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from tracelink.config.env_loader import Environment, get_environment, load_env_files
from tracelink.config.validators import (
    resolve_path,
    validate_log_format,
    validate_log_level,
    validate_service_name,
)

log = structlog.get_logger(__name__)


class TracingConfig(BaseSettings):
    """Unified tracing configuration.

    Loads configuration from environment variables, .env files and defaults.
    Validates all values using Pydantic.
    """

    model_config = SettingsConfigDict(
        # .env files are loaded manually via env_loader to support
        # environment-specific files with priority order.
        env_prefix="TRACELINK_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Environment = Field(
        default_factory=get_environment, description="Current environment"
    )
    debug: bool = Field(default=False, alias="APP_DEBUG", description="Debug mode flag")

    # Identity
    service_name: str = Field(
        default="tracelink", description="Reported as the service.name resource attribute"
    )
    sink_endpoint: str | None = Field(
        default=None,
        alias="OTLP_ENDPOINT",
        description="Collector endpoint (http://host:port, elasticsearch://host:port, console, memory)",
    )

    # Logging
    log_dir: Path | None = Field(default=None, description="Directory for JSON-lines log files")
    log_level: str = Field(
        default="INFO",
        alias="APP_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="json", alias="APP_LOG_FORMAT", description="Log format (json or console)"
    )

    # Batch exporter
    export_max_batch_size: int = Field(
        default=512, ge=1, description="Spans per batch; a full batch is flushed immediately"
    )
    export_schedule_delay_seconds: float = Field(
        default=5.0, gt=0, description="Maximum time a batch accumulates before flushing"
    )
    export_max_queue_size: int | None = Field(
        default=None,
        ge=1,
        description="Hard ceiling on queued spans (default: 10x batch size)",
    )
    export_max_retries: int = Field(
        default=3, ge=0, description="Retries per batch after the first failed attempt"
    )
    export_backoff_initial_seconds: float = Field(
        default=0.5, ge=0, description="First retry delay; doubles on every retry"
    )
    export_backoff_max_seconds: float = Field(
        default=8.0, ge=0, description="Upper bound on a single retry delay"
    )
    export_request_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Per-request timeout for network sinks"
    )
    export_circuit_breaker_threshold: int = Field(
        default=3, ge=1, description="Consecutive failed batches before pausing the sink"
    )
    export_circuit_breaker_cooldown_seconds: float = Field(
        default=30.0, ge=0, description="How long the sink stays paused"
    )
    shutdown_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Grace period for the final flush at shutdown"
    )

    # Elasticsearch sink
    elasticsearch_index_prefix: str = Field(
        default="traces", description="Index prefix for the Elasticsearch sink"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)

    @field_validator("service_name")
    @classmethod
    def validate_service_name(cls, v: str) -> str:
        """Validate service name."""
        return validate_service_name(v)

    @field_validator("log_dir", mode="before")
    @classmethod
    def resolve_paths(cls, v: Path | str | None) -> Path | None:
        """Resolve relative paths to absolute."""
        return resolve_path(v)

    @model_validator(mode="after")
    def apply_queue_ceiling(self) -> "TracingConfig":
        """Default the queue ceiling to ten batches and keep it above one batch."""
        if self.export_max_queue_size is None:
            self.export_max_queue_size = self.export_max_batch_size * 10
        elif self.export_max_queue_size < self.export_max_batch_size:
            raise ValueError(
                "export_max_queue_size must be at least export_max_batch_size "
                f"({self.export_max_queue_size} < {self.export_max_batch_size})"
            )
        return self


_settings: TracingConfig | None = None


def load_tracing_config() -> TracingConfig:
    """Load and validate tracing configuration.

    This function:
    1. Loads .env files in priority order (via env_loader)
    2. Creates TracingConfig instance (reads from environment variables)
    3. Validates all values using Pydantic

    Returns:
        Validated TracingConfig instance.

    Raises:
        ValidationError: If configuration validation fails.
    """
    log.info("loading_tracing_config", environment=get_environment().value)

    load_env_files()

    try:
        config = TracingConfig()
        log.info(
            "tracing_config_loaded",
            environment=config.environment.value,
            service_name=config.service_name,
            sink_endpoint=config.sink_endpoint,
            log_level=config.log_level,
            log_format=config.log_format,
        )
        return config
    except Exception as e:
        log.error("tracing_config_load_failed", error=str(e), error_type=type(e).__name__)
        raise


def get_settings() -> TracingConfig:
    """Get the tracing settings singleton.

    Returns:
        TracingConfig instance (singleton pattern).
    """
    global _settings
    if _settings is None:
        _settings = load_tracing_config()
    return _settings

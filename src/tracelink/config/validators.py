"""Custom Pydantic validators for configuration.

This module provides validators for cross-field validation and
custom type conversions.
"""

from pathlib import Path


def validate_log_level(value: str) -> str:
    """Validate log level is one of the standard levels.

    Args:
        value: Log level string.

    Returns:
        Validated log level.

    Raises:
        ValueError: If log level is not valid.
    """
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if value.upper() not in valid_levels:
        raise ValueError(f"log_level must be one of {valid_levels}, got {value}")
    return value.upper()


def validate_log_format(value: str) -> str:
    """Validate log format is 'json' or 'console'.

    Args:
        value: Log format string.

    Returns:
        Validated log format.

    Raises:
        ValueError: If log format is not valid.
    """
    valid_formats = {"json", "console"}
    if value.lower() not in valid_formats:
        raise ValueError(f"log_format must be one of {valid_formats}, got {value}")
    return value.lower()


def validate_service_name(value: str) -> str:
    """Validate the service name reported as the `service.name` resource.

    Args:
        value: Service name.

    Returns:
        Stripped service name.

    Raises:
        ValueError: If the name is empty or blank.
    """
    stripped = value.strip()
    if not stripped:
        raise ValueError("service_name must not be empty")
    return stripped


def resolve_path(value: Path | str | None) -> Path | None:
    """Resolve a path to an absolute path relative to the working directory.

    Args:
        value: Path value (string, Path or None).

    Returns:
        Resolved Path object, or None when no path was given.
    """
    if value is None or value == "":
        return None
    path = Path(value) if isinstance(value, str) else value
    return path.expanduser().resolve()

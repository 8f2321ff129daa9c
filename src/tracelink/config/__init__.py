"""Configuration management for tracelink.

Settings come from environment variables, .env files and defaults, validated
by Pydantic. `get_settings()` returns the process-wide instance.
"""

from tracelink.config.env_loader import Environment, get_environment, load_env_files
from tracelink.config.settings import TracingConfig, get_settings, load_tracing_config

__all__ = [
    "TracingConfig",
    "get_settings",
    "load_tracing_config",
    "Environment",
    "get_environment",
    "load_env_files",
]

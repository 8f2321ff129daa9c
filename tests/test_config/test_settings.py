"""Tests for configuration settings."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from tracelink.config import (
    Environment,
    TracingConfig,
    get_environment,
    get_settings,
    load_env_files,
)
from tracelink.config.bootstrap import (
    get_bootstrap_log_dir,
    get_bootstrap_log_format,
    get_bootstrap_log_level,
)


class TestEnvironmentDetection:
    """Test environment detection."""

    def test_get_environment_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test default environment is development."""
        monkeypatch.delenv("APP_ENV", raising=False)

        assert get_environment() == Environment.DEVELOPMENT

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("production", Environment.PRODUCTION),
            ("prod", Environment.PRODUCTION),
            ("staging", Environment.STAGING),
            ("stage", Environment.STAGING),
            ("test", Environment.TEST),
            ("TEST", Environment.TEST),
            ("unknown", Environment.DEVELOPMENT),
        ],
    )
    def test_get_environment_values(
        self, monkeypatch: pytest.MonkeyPatch, value: str, expected: Environment
    ) -> None:
        """Test APP_ENV values and aliases."""
        monkeypatch.setenv("APP_ENV", value)

        assert get_environment() == expected


class TestTracingConfig:
    """Test TracingConfig class."""

    @pytest.fixture(autouse=True)
    def isolated_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "APP_ENV",
            "APP_DEBUG",
            "APP_LOG_LEVEL",
            "APP_LOG_FORMAT",
            "OTLP_ENDPOINT",
            "TRACELINK_SERVICE_NAME",
            "TRACELINK_LOG_DIR",
            "TRACELINK_EXPORT_MAX_BATCH_SIZE",
            "TRACELINK_EXPORT_MAX_QUEUE_SIZE",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self) -> None:
        """Test TracingConfig has correct code defaults."""
        config = TracingConfig()

        assert config.environment == Environment.DEVELOPMENT
        assert config.debug is False
        assert config.service_name == "tracelink"
        assert config.sink_endpoint is None
        assert config.log_dir is None
        assert config.log_level == "INFO"
        assert config.log_format == "json"
        assert config.export_max_batch_size == 512
        assert config.export_schedule_delay_seconds == 5.0
        assert config.export_max_queue_size == 5120
        assert config.export_max_retries == 3
        assert config.shutdown_timeout_seconds == 30.0

    def test_reads_environment_variables(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """Prefixed variables and the unprefixed aliases are read."""
        monkeypatch.setenv("OTLP_ENDPOINT", "http://tempo:4318")
        monkeypatch.setenv("APP_LOG_LEVEL", "debug")
        monkeypatch.setenv("APP_DEBUG", "1")
        monkeypatch.setenv("TRACELINK_SERVICE_NAME", "checkout")
        monkeypatch.setenv("TRACELINK_EXPORT_MAX_BATCH_SIZE", "64")
        monkeypatch.setenv("TRACELINK_LOG_DIR", str(tmp_path / "logs"))

        config = TracingConfig()

        assert config.sink_endpoint == "http://tempo:4318"
        assert config.log_level == "DEBUG"
        assert config.debug is True
        assert config.service_name == "checkout"
        assert config.export_max_batch_size == 64
        assert config.export_max_queue_size == 640
        assert config.log_dir == (tmp_path / "logs").resolve()

    def test_queue_smaller_than_batch_is_rejected(self) -> None:
        """The queue ceiling must hold at least one batch."""
        with pytest.raises(ValidationError):
            TracingConfig(export_max_batch_size=100, export_max_queue_size=10)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"log_level": "INVALID"},
            {"log_format": "xml"},
            {"service_name": "   "},
            {"export_max_batch_size": 0},
            {"export_schedule_delay_seconds": 0},
            {"export_max_retries": -1},
        ],
    )
    def test_invalid_values_are_rejected(self, overrides: dict[str, object]) -> None:
        """Out-of-range and unknown values fail validation."""
        with pytest.raises(ValidationError):
            TracingConfig(**overrides)

    def test_get_settings_is_singleton(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """get_settings() returns the same instance on every call."""
        import tracelink.config.settings as settings_module

        monkeypatch.setattr(settings_module, "_settings", None)

        assert get_settings() is get_settings()


class TestEnvFiles:
    """Test .env file loading priority."""

    def test_local_file_overrides_base(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Higher-priority files win over .env."""
        monkeypatch.delenv("APP_ENV", raising=False)
        (tmp_path / ".env").write_text("TRACELINK_TEST_VALUE=base\nTRACELINK_TEST_BASE=1\n")
        (tmp_path / ".env.local").write_text("TRACELINK_TEST_VALUE=local\n")

        try:
            loaded = load_env_files(tmp_path)

            assert loaded == [".env.local", ".env"]
            assert os.environ["TRACELINK_TEST_VALUE"] == "local"
            assert os.environ["TRACELINK_TEST_BASE"] == "1"
        finally:
            os.environ.pop("TRACELINK_TEST_VALUE", None)
            os.environ.pop("TRACELINK_TEST_BASE", None)

    def test_environment_variables_beat_files(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Values already in the environment are never overridden."""
        monkeypatch.setenv("APP_ENV", "test")
        monkeypatch.setenv("TRACELINK_TEST_VALUE", "explicit")
        (tmp_path / ".env.test").write_text("TRACELINK_TEST_VALUE=from-file\n")

        loaded = load_env_files(tmp_path)

        assert loaded == [".env.test"]
        assert os.environ["TRACELINK_TEST_VALUE"] == "explicit"

    def test_no_files(self, tmp_path: Path) -> None:
        """A directory without .env files loads nothing."""
        assert load_env_files(tmp_path) == []


class TestBootstrap:
    """Test pre-settings helpers used by logging."""

    def test_invalid_level_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """An invalid APP_LOG_LEVEL falls back to the default."""
        monkeypatch.setenv("APP_LOG_LEVEL", "loud")

        assert get_bootstrap_log_level() == "INFO"

    def test_format_and_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Format and directory come straight from the environment."""
        monkeypatch.setenv("APP_LOG_FORMAT", "CONSOLE")
        monkeypatch.setenv("TRACELINK_LOG_DIR", str(tmp_path))

        assert get_bootstrap_log_format() == "console"
        assert get_bootstrap_log_dir() == tmp_path

    def test_log_dir_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """File logging is disabled without TRACELINK_LOG_DIR."""
        monkeypatch.delenv("TRACELINK_LOG_DIR", raising=False)

        assert get_bootstrap_log_dir() is None

"""
Unit tests for configuration loading.

Tests cover:
- Defaults and validation of the nested models
- Environment variable overrides with the nested delimiter
- YAML loading with ${VAR} expansion
"""

import pytest
from pydantic import ValidationError

from appwrite_transfer.config import (
    DEFAULT_KEY_SCOPES,
    LoggingConfig,
    PerformanceConfig,
    PlatformConfig,
    RealtimeConfig,
    WorkerConfig,
    load_config,
    load_config_from_yaml,
)


class TestDefaults:
    def test_worker_defaults(self):
        config = WorkerConfig()

        assert config.database.url.startswith("sqlite:///")
        assert config.platform.console_project_id == "console"
        assert config.platform.key_scopes == DEFAULT_KEY_SCOPES
        assert config.performance.max_concurrent_pushes == 5
        assert config.realtime.sink == "logging"
        assert "$permissions" in config.schema_descriptor.internal_attributes

    def test_config_is_frozen(self):
        config = WorkerConfig()

        with pytest.raises(ValidationError):
            config.performance.page_size = 10


class TestValidation:
    def test_endpoint_is_normalized(self):
        assert PlatformConfig(internal_endpoint="http://appwrite/v1/").internal_endpoint == (
            "http://appwrite/v1"
        )

    def test_endpoint_requires_scheme(self):
        with pytest.raises(ValidationError, match="http"):
            PlatformConfig(internal_endpoint="appwrite/v1")

    def test_backoff_window(self):
        with pytest.raises(ValidationError, match="retry_backoff_min"):
            PerformanceConfig(retry_backoff_min=30, retry_backoff_max=10)

    def test_concurrency_bounds(self):
        with pytest.raises(ValidationError):
            PerformanceConfig(max_concurrent_pushes=0)

    def test_http_sink_requires_url(self):
        with pytest.raises(ValidationError, match="realtime.url"):
            RealtimeConfig(sink="http")

    def test_log_level_is_uppercased(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError, match="Log level"):
            LoggingConfig(level="LOUD")

    def test_schema_descriptor_strip(self):
        schema = WorkerConfig().schema_descriptor

        assert schema.strip({"$id": "x", "$createdAt": "t", "title": "a"}) == {"title": "a"}
        assert schema.is_internal("$updatedAt")
        assert not schema.is_internal("title")


class TestEnvironment:
    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("APPWRITE_TRANSFER_PERFORMANCE__MAX_CONCURRENT_PUSHES", "9")
        monkeypatch.setenv("APPWRITE_TRANSFER_PLATFORM__CONSOLE_PROJECT_ID", "admin")

        config = WorkerConfig()

        assert config.performance.max_concurrent_pushes == 9
        assert config.platform.console_project_id == "admin"


class TestYaml:
    def test_load(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STATE_DB_URL", "sqlite:///from-env.db")
        path = tmp_path / "config.yaml"
        path.write_text(
            "database:\n"
            "  url: ${STATE_DB_URL}\n"
            "performance:\n"
            "  page_size: 50\n"
            "realtime:\n"
            "  sink: memory\n"
        )

        config = load_config_from_yaml(path)

        assert config.database.url == "sqlite:///from-env.db"
        assert config.performance.page_size == 50
        assert config.realtime.sink == "memory"

    def test_missing_variable(self, tmp_path, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("database:\n  url: ${NOT_SET_ANYWHERE}\n")

        with pytest.raises(ValueError, match="NOT_SET_ANYWHERE"):
            load_config_from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="Empty configuration"):
            load_config_from_yaml(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config_from_yaml(path)

    def test_load_config_without_path(self):
        assert isinstance(load_config(), WorkerConfig)

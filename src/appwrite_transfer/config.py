"""Configuration management for Appwrite Transfer using Pydantic.

This module provides type-safe configuration models for the migration
worker: the state database, platform constants, performance tuning,
notification delivery, logging and the internal document schema.

Configuration is loaded once at startup (from YAML, environment variables
or both) and is immutable afterwards.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KEY_SCOPES: tuple[str, ...] = (
    "users.read",
    "users.write",
    "teams.read",
    "teams.write",
    "databases.read",
    "databases.write",
    "collections.read",
    "collections.write",
    "documents.read",
    "documents.write",
    "buckets.read",
    "buckets.write",
    "files.read",
    "files.write",
    "functions.read",
    "functions.write",
)


class DatabaseConfig(BaseModel):
    """State database configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(
        default="sqlite:///./transfer_state.db",
        description="SQLAlchemy URL of the platform database (sqlite:/// or postgresql://)",
    )
    echo: bool = Field(default=False, description="Log SQL statements")
    pool_size: int = Field(default=5, ge=1, le=50, description="PostgreSQL pool size")
    max_overflow: int = Field(default=10, ge=1, le=100, description="PostgreSQL pool overflow")
    pool_timeout: int = Field(default=30, ge=1, le=300, description="Pool checkout timeout")
    pool_recycle: int = Field(default=3600, ge=60, le=28800, description="Connection recycle age")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL is not empty."""
        if not v or not v.strip():
            raise ValueError("Database URL cannot be empty")
        return v.strip()


class PlatformConfig(BaseModel):
    """Constants of the hosting platform the worker runs inside."""

    model_config = ConfigDict(frozen=True)

    console_project_id: str = Field(
        default="console",
        description="Project ID of the administrative console; its jobs are ignored",
    )
    internal_endpoint: str = Field(
        default="http://appwrite/v1",
        description="Endpoint injected into appwrite credentials that do not set one",
    )
    key_name: str = Field(default="Transfer API Key", description="Name of temporary keys")
    key_scopes: tuple[str, ...] = Field(
        default=DEFAULT_KEY_SCOPES, description="Scopes granted to temporary keys"
    )

    @field_validator("internal_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate and normalize endpoint URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint must start with http:// or https://")
        return v.rstrip("/")


class PerformanceConfig(BaseModel):
    """Performance tuning configuration."""

    model_config = ConfigDict(frozen=True)

    max_concurrent_pushes: int = Field(
        default=5, ge=1, le=50, description="Pushes in flight per resource type"
    )
    page_size: int = Field(
        default=100, ge=1, le=5000, description="Page size used when listing source resources"
    )
    rate_limit: int = Field(default=20, ge=1, le=100, description="Requests per second limit")
    request_timeout: int = Field(
        default=30, ge=1, le=1200, description="HTTP request timeout in seconds"
    )
    http_max_connections: int = Field(
        default=50, ge=1, le=200, description="Maximum connections per HTTP client"
    )
    http_max_keepalive_connections: int = Field(
        default=20, ge=1, le=100, description="Maximum keep-alive connections per HTTP client"
    )
    retry_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts for rate limited pushes"
    )
    retry_backoff_min: int = Field(
        default=2, ge=1, le=60, description="Minimum backoff time in seconds for retries"
    )
    retry_backoff_max: int = Field(
        default=60, ge=5, le=300, description="Maximum backoff time in seconds for retries"
    )

    @model_validator(mode="after")
    def validate_backoff(self) -> "PerformanceConfig":
        """Ensure the backoff window is well formed."""
        if self.retry_backoff_min > self.retry_backoff_max:
            raise ValueError("retry_backoff_min must not exceed retry_backoff_max")
        return self


class RealtimeConfig(BaseModel):
    """Live-update notification configuration."""

    model_config = ConfigDict(frozen=True)

    sink: Literal["logging", "http", "memory"] = Field(
        default="logging", description="Where migration updates are delivered"
    )
    url: str | None = Field(default=None, description="Endpoint for the http sink")
    timeout: int = Field(default=10, ge=1, le=120, description="HTTP sink timeout in seconds")

    @model_validator(mode="after")
    def validate_sink(self) -> "RealtimeConfig":
        """Require a URL for the http sink."""
        if self.sink == "http" and not self.url:
            raise ValueError("realtime.url is required when realtime.sink is 'http'")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(
        default="WARNING",
        description="Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    file_level: str = Field(
        default="DEBUG",
        description="File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default=None, description="Log file path")
    log_payloads: bool = Field(
        default=False,
        description="Log request/response payloads at DEBUG level (secrets are redacted)",
    )
    max_payload_size: int = Field(
        default=10000,
        ge=100,
        le=1000000,
        description="Maximum payload size (characters) to log",
    )

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "console"]
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Log format must be one of: {', '.join(valid_formats)}")
        return v_lower


class SchemaDescriptor(BaseModel):
    """Describes the internal attributes of platform documents.

    Internal attributes are managed by the destination platform. They are
    stripped from payloads before a push and left out of content
    fingerprints.
    """

    model_config = ConfigDict(frozen=True)

    internal_attributes: tuple[str, ...] = Field(
        default=(
            "$id",
            "$internalId",
            "$createdAt",
            "$updatedAt",
            "$permissions",
            "$collectionId",
            "$collection",
            "$databaseId",
            "$tenant",
        ),
        description="Attributes owned by the platform rather than by the resource",
    )

    def is_internal(self, attribute: str) -> bool:
        """Return whether ``attribute`` is managed by the platform."""
        return attribute in self.internal_attributes

    def strip(self, data: dict[str, Any]) -> dict[str, Any]:
        """Return ``data`` without internal attributes."""
        return {k: v for k, v in data.items() if k not in self.internal_attributes}


class WorkerConfig(BaseSettings):
    """Main worker configuration.

    Every field can be overridden from the environment, e.g.
    ``APPWRITE_TRANSFER_DATABASE__URL`` or
    ``APPWRITE_TRANSFER_PERFORMANCE__MAX_CONCURRENT_PUSHES``.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPWRITE_TRANSFER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="State database configuration"
    )
    platform: PlatformConfig = Field(
        default_factory=PlatformConfig, description="Platform constants"
    )
    performance: PerformanceConfig = Field(
        default_factory=PerformanceConfig, description="Performance configuration"
    )
    realtime: RealtimeConfig = Field(
        default_factory=RealtimeConfig, description="Notification configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    schema_descriptor: SchemaDescriptor = Field(
        default_factory=SchemaDescriptor,
        alias="schema",
        description="Internal document attributes",
    )


def load_config_from_yaml(config_path: str | Path) -> WorkerConfig:
    """Load configuration from YAML file.

    Values not present in the file are still read from the environment.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        WorkerConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        raise ValueError(f"Empty configuration file: {config_path}")

    if not isinstance(config_data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {config_path}")

    config_data = _expand_env_vars(config_data)

    return WorkerConfig(**config_data)


def load_config(config_path: str | Path | None = None) -> WorkerConfig:
    """Load configuration from ``config_path`` or from the environment only."""
    if config_path is None:
        return WorkerConfig()
    return load_config_from_yaml(config_path)


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in config data.

    Supports ${VAR_NAME} syntax for whole-value substitution.

    Args:
        data: Configuration value

    Returns:
        Value with expanded environment variables
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    if isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        var_name = data[2:-1]
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not found. "
                f"Please set it in your environment or .env file."
            )
        return env_value
    return data

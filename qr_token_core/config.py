"""
Centralized configuration management for the QR token core.

This module provides a unified configuration system with support for:
- Environment variables
- Feature flags
- Signing key and token lifetime settings
- Validation using Pydantic
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from .constants import EnvironmentVariable, Limits, LogLevel, QueueName


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(
            EnvironmentVariable.DATABASE_URL.value, "sqlite:///./qr_tokens.db"
        ),
        description="Database connection string",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL statements")


class QueueConfig(BaseModel):
    """Queue configuration for Azure Storage Queues."""

    connection_string: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.AZURE_STORAGE_CONNECTION.value, ""),
        description="Azure Storage connection string",
    )
    logs_queue_name: str = Field(default=QueueName.LOGS.value, description="Logs queue name")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.LOG_LEVEL.value, LogLevel.INFO.value),
        description="Logging level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {level.value for level in LogLevel}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class FeatureFlags(BaseModel):
    """Feature flags for controlling runtime behavior."""

    enable_logs_queue: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.ENABLE_LOGS_QUEUE.value),
        description="Ship structured logs to the Azure logs queue",
    )
    enable_async_audit: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.ENABLE_ASYNC_AUDIT.value),
        description="Write audit entries on a background executor",
    )


class SecurityConfig(BaseModel):
    """Signing key, token lifetime and audit delivery settings."""

    qr_signing_key: Optional[SecretStr] = Field(
        default_factory=lambda: (
            SecretStr(os.environ[EnvironmentVariable.QR_SIGNING_KEY.value])
            if os.getenv(EnvironmentVariable.QR_SIGNING_KEY.value)
            else None
        ),
        description="HMAC key for QR tokens (validated when the signer is built)",
    )
    qr_token_expiry_minutes: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.QR_TOKEN_EXPIRY_MINUTES.value, Limits.DEFAULT_TOKEN_EXPIRY_MINUTES
        ),
        description="Validity window of an issued token in minutes",
    )
    qr_token_cleanup_days: int = Field(
        default_factory=lambda: _env_int(
            EnvironmentVariable.QR_TOKEN_CLEANUP_DAYS.value, Limits.DEFAULT_CLEANUP_DAYS
        ),
        description="Days after expiry before token records are purged",
    )
    audit_max_retries: int = Field(default=3, description="Audit write attempts before giving up")
    audit_retry_backoff_base: float = Field(
        default=0.05, description="Base delay for exponential audit retry backoff (seconds)"
    )

    @field_validator("qr_token_expiry_minutes")
    def validate_expiry(cls, v: int) -> int:
        """Keep the validity window between one minute and one hour."""
        if not Limits.MIN_TOKEN_EXPIRY_MINUTES <= v <= Limits.MAX_TOKEN_EXPIRY_MINUTES:
            raise ValueError(
                f"qr_token_expiry_minutes must be between {Limits.MIN_TOKEN_EXPIRY_MINUTES} "
                f"and {Limits.MAX_TOKEN_EXPIRY_MINUTES}, got {v}"
            )
        return v

    @field_validator("qr_token_cleanup_days")
    def validate_cleanup_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"qr_token_cleanup_days must be at least 1, got {v}")
        return v

    @field_validator("audit_max_retries")
    def validate_audit_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"audit_max_retries must be at least 1, got {v}")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""

    environment: str = Field(
        default_factory=lambda: os.getenv(EnvironmentVariable.APP_ENV.value, "development"),
        description="Application environment",
    )
    debug: bool = Field(
        default_factory=lambda: _env_flag(EnvironmentVariable.DEBUG.value),
        description="Debug mode",
    )

    # Sub-configurations
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    queue: QueueConfig = Field(default_factory=QueueConfig, description="Queue configuration")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    features: FeatureFlags = Field(default_factory=FeatureFlags, description="Feature flags")
    security: SecurityConfig = Field(
        default_factory=SecurityConfig, description="Security configuration"
    )

    # Custom configuration
    custom: Dict[str, Any] = Field(default_factory=dict, description="Custom configuration values")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls()

    def get_custom(self, key: str, default: Any = None) -> Any:
        """Get a custom configuration value."""
        return self.custom.get(key, default)

    def set_custom(self, key: str, value: Any) -> None:
        """Set a custom configuration value."""
        self.custom[key] = value


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None

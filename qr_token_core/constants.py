"""
Constants and enums for the QR token core.

This module centralizes all magic strings and constants used throughout
the package to ensure consistency and maintainability.
"""

from enum import Enum


class QueueName(str, Enum):
    """Standard queue names used by the package."""

    LOGS = "logs-queue"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    AZURE_STORAGE_CONNECTION = "AzureWebJobsStorage"
    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    QR_SIGNING_KEY = "QR_SIGNING_KEY"
    QR_TOKEN_EXPIRY_MINUTES = "QR_TOKEN_EXPIRY_MINUTES"
    QR_TOKEN_CLEANUP_DAYS = "QR_TOKEN_CLEANUP_DAYS"
    ENABLE_LOGS_QUEUE = "ENABLE_LOGS_QUEUE"
    ENABLE_ASYNC_AUDIT = "ENABLE_ASYNC_AUDIT"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""

    TOKEN_ISSUED = "QR_TOKEN_ISSUED"
    TOKEN_ISSUE_DENIED = "QR_TOKEN_ISSUE_DENIED"
    TOKEN_REDEEMED = "QR_TOKEN_REDEEMED"
    TOKEN_REDEMPTION_FAILED = "QR_TOKEN_REDEMPTION_FAILED"
    TOKEN_REVOKED = "QR_TOKEN_REVOKED"
    TOKEN_REVOCATION_FAILED = "QR_TOKEN_REVOCATION_FAILED"
    TOKENS_CLEANED_UP = "QR_TOKENS_CLEANED_UP"


class EntityType(str, Enum):
    """Record types a QR token is commonly bound to."""

    PRESCRIPTION = "Prescription"
    DOCTOR_NOTE = "DoctorNote"


class Limits:
    """System limits and thresholds."""

    MIN_SIGNING_KEY_BYTES = 32
    MIN_TOKEN_EXPIRY_MINUTES = 1
    MAX_TOKEN_EXPIRY_MINUTES = 60
    DEFAULT_TOKEN_EXPIRY_MINUTES = 5
    DEFAULT_CLEANUP_DAYS = 7
    NONCE_BYTES = 16
    MAX_ISSUE_ATTEMPTS = 3
    MAX_TOKEN_LENGTH = 2048
    MAX_ENTITY_TYPE_LENGTH = 50
    MAX_ENTITY_ID_LENGTH = 100
    MAX_USER_ID_LENGTH = 100
    DEFAULT_PAGE_SIZE = 50
    MAX_PAGE_SIZE = 500
    MAX_REVOCATION_REASON_LENGTH = 500


# Markers that identify an unconfigured signing key copied from a template
SIGNING_KEY_PLACEHOLDER_MARKERS = ("CHANGE", "REPLACE")

TOKEN_FORMAT_VERSION = "v1"

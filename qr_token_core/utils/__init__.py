"""Utility modules for the QR token core."""

from .hash_utils import hash_prefix, hash_token
from .json_utils import canonical_dumps, dumps, loads
from .logger import (
    AzureQueueHandler,
    ContextAwareLogger,
    RequestContextFilter,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    "AzureQueueHandler",
    "ContextAwareLogger",
    "RequestContextFilter",
    "canonical_dumps",
    "configure_logging",
    "dumps",
    "get_logger",
    "hash_prefix",
    "hash_token",
    "loads",
    "reset_logging",
]

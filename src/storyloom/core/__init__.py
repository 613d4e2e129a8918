"""storyloom.core: errors, logging and settings shared by every component."""

from storyloom.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingConfigError,
    NetworkError,
    RateLimitError,
    StoryloomError,
    TimeoutError,
    TransientError,
    UpstreamError,
    is_retryable_status,
)
from storyloom.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "MissingConfigError",
    "NetworkError",
    "RateLimitError",
    "StoryloomError",
    "TimeoutError",
    "TransientError",
    "UpstreamError",
    "is_retryable_status",
    "LogContext",
    "configure_logging",
    "get_logger",
]

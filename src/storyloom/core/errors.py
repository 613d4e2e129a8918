"""
Typed errors for storyloom.

Upstream clients raise these; the resilience layer reads ``retryable`` to
decide whether another attempt makes sense, and the HTTP layer reads
``status_code`` to pick a response status.

Hierarchy::

    StoryloomError (category, retryable, retry_after, context, cause)
      ├── TransientError          retryable
      │     ├── NetworkError
      │     ├── TimeoutError
      │     └── RateLimitError    retry_after defaults to 60s
      ├── UpstreamError           status_code, details; retryable per status
      └── ConfigError             never retryable
            ├── MissingConfigError
            └── InvalidConfigError

Usage:
    from storyloom.core.errors import UpstreamError, is_retryable_status

    if response.is_error:
        raise UpstreamError(
            "Image generation failed",
            status_code=response.status_code,
            retryable=is_retryable_status(response.status_code),
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse error classes used in log records and error payloads."""

    NETWORK = "NETWORK"
    UPSTREAM = "UPSTREAM"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Where an error happened. Unknown keys go to ``metadata``."""

    upstream: str | None = None
    url: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {
            key: value
            for key, value in (("upstream", self.upstream), ("url", self.url), ("request_id", self.request_id))
            if value is not None
        }
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


class StoryloomError(Exception):
    """
    Base class for storyloom errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.

    Examples:
        >>> StoryloomError("Something went wrong").retryable
        False
        >>> UpstreamError("Bad gateway", status_code=502).category
        <ErrorCategory.UPSTREAM: 'UPSTREAM'>
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StoryloomError:
        """Attach context fields and return ``self`` (for ``raise ... .with_context()``)."""
        for key, value in kwargs.items():
            if key in ("upstream", "url", "request_id"):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialise for log records and error payloads."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if context := self.context.to_dict():
            result["context"] = context
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# ── Transient ────────────────────────────────────────────────────────


class TransientError(StoryloomError):
    """The same call, made again after a delay, may well succeed."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection refused or reset, DNS failure, aborted transfer."""


class TimeoutError(TransientError):
    """The upstream did not answer in time."""


class RateLimitError(TransientError):
    """The upstream asked us to slow down."""

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: int = 60, **kwargs: Any):
        super().__init__(message, retry_after=retry_after, **kwargs)


# ── Upstream ─────────────────────────────────────────────────────────


class UpstreamError(StoryloomError):
    """
    The request reached the upstream, which answered with an error.

    Retryable unless the caller says otherwise; pass
    ``retryable=is_retryable_status(status)`` when the status is known.
    """

    default_category = ErrorCategory.UPSTREAM
    default_retryable = True

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.details is not None:
            result["details"] = self.details
        return result


# ── Configuration ────────────────────────────────────────────────────


class ConfigError(StoryloomError):
    """Bad or missing configuration. Retrying cannot help."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")


class InvalidConfigError(ConfigError):
    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# ── Status classification ────────────────────────────────────────────

# 4xx statuses that mean "try again later" rather than "this request is wrong"
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


def is_retryable_status(status_code: int | None) -> bool:
    """5xx and 408/425/429 are retryable, other 4xx are not, unknown is."""
    if status_code is None or status_code >= 500:
        return True
    if 400 <= status_code < 500:
        return status_code in RETRYABLE_STATUS_CODES
    return True


__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "MissingConfigError",
    "NetworkError",
    "RETRYABLE_STATUS_CODES",
    "RateLimitError",
    "StoryloomError",
    "TimeoutError",
    "TransientError",
    "UpstreamError",
    "is_retryable_status",
]

"""
Error handlers: map upstream failures to RFC 7807 responses.

    kind            status
    ─────────────   ──────────────────────────────────────────────
    timeout         504
    network         504
    upstream        upstream's own error status, else 502
    configuration   500
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storyloom.api.schemas import ProblemDetail
from storyloom.core.errors import ConfigError
from storyloom.core.logging import get_logger
from storyloom.execution.models import FailureKind, InvocationFailed

logger = get_logger(__name__)

KIND_TO_STATUS: dict[FailureKind, int] = {
    FailureKind.TIMEOUT: 504,
    FailureKind.NETWORK: 504,
    FailureKind.UPSTREAM: 502,
    FailureKind.CONFIGURATION: 500,
}

KIND_TO_TITLE: dict[FailureKind, str] = {
    FailureKind.TIMEOUT: "Upstream request timed out",
    FailureKind.NETWORK: "Upstream unreachable",
    FailureKind.UPSTREAM: "Upstream request failed",
    FailureKind.CONFIGURATION: "Server configuration error",
}


def status_for_failure(exc: InvocationFailed) -> int:
    """Resolve a terminal invocation failure to an HTTP status."""
    if exc.kind is FailureKind.UPSTREAM:
        status = exc.status_code
        if status is not None and 400 <= status < 600:
            return status
    return KIND_TO_STATUS[exc.kind]


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    kind: str | None = None,
    attempts_made: int | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        detail=detail,
        instance=instance,
        kind=kind,
        attempts_made=attempts_made,
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


async def invocation_failed_handler(request: Request, exc: InvocationFailed) -> JSONResponse:
    status = status_for_failure(exc)
    logger.warning(
        "api.upstream_failed",
        path=request.url.path,
        status=status,
        **exc.to_dict(),
    )
    return problem_response(
        status=status,
        title=KIND_TO_TITLE[exc.kind],
        detail=exc.message,
        instance=str(request.url),
        kind=exc.kind.value,
        attempts_made=exc.attempts_made,
    )


async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    logger.error("api.config_error", path=request.url.path, error=exc.message)
    return problem_response(
        status=500,
        title=KIND_TO_TITLE[FailureKind.CONFIGURATION],
        detail=exc.message,
        instance=str(request.url),
        kind=FailureKind.CONFIGURATION.value,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InvocationFailed, invocation_failed_handler)
    app.add_exception_handler(ConfigError, config_error_handler)


__all__ = [
    "KIND_TO_STATUS",
    "problem_response",
    "register_error_handlers",
    "status_for_failure",
]

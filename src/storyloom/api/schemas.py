"""Response envelopes shared by all routers."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Used as the error envelope for all non-2xx responses. Upstream
    failures also carry the failure ``kind`` and how many attempts were
    made before giving up.

    Example:
        {
            "type": "about:blank",
            "title": "Upstream request timed out",
            "status": 504,
            "detail": "Operation 'openai.images' timed out after 120.0s",
            "kind": "timeout",
            "attempts_made": 5
        }
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str = ""
    instance: str = ""
    kind: str | None = None
    attempts_made: int | None = None


class UpstreamHealth(BaseModel):
    """Admission snapshot for one upstream."""

    name: str
    max_concurrent: int
    active: int
    waiting: int
    timeout_ms: float
    max_attempts: int
    base_backoff_ms: float


class HealthResponse(BaseModel):
    status: str = "ok"
    upstreams: list[UpstreamHealth] = Field(default_factory=list)

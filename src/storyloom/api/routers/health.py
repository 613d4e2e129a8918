"""Health router: liveness plus admission state of each upstream."""

from __future__ import annotations

from fastapi import APIRouter

from storyloom.api.deps import ImageGateway
from storyloom.api.schemas import HealthResponse, UpstreamHealth

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(gateway: ImageGateway) -> HealthResponse:
    return HealthResponse(upstreams=[UpstreamHealth(**gateway.snapshot())])

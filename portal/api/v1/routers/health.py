from fastapi import APIRouter

from portal.core.health import live_payload, ready_payload
from portal.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health/ready", summary="Service readiness check")
@limiter.exempt
async def health_ready() -> dict:
    return await ready_payload()

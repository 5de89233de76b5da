from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select

from portal import __version__
from portal.core.settings import settings
from portal.db.session import AsyncSessionLocal
from portal.models.service_type import ServiceType
from portal.services.storage.service import call_adapter, get_storage_adapter
from portal.utils.redis_client import get_redis_client


async def _check_db() -> dict[str, Any]:
    try:
        async with AsyncSessionLocal() as session:
            active = await session.scalar(
                select(func.count()).select_from(ServiceType).where(ServiceType.is_active.is_(True))
            )
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}
    # An empty catalogue means folders and documents cannot be classified yet.
    return {"status": "ok", "active_service_types": active or 0}


async def _check_redis() -> dict[str, Any]:
    if settings.rate_limit_storage_uri.startswith("memory://"):
        return {"status": "ok", "mode": "memory"}
    try:
        await get_redis_client().ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def _check_storage() -> dict[str, Any]:
    try:
        adapter = get_storage_adapter()
        await call_adapter("health check", adapter.check)
    except Exception as exc:
        return {"status": "error", "provider": settings.storage_provider, "error": str(exc)}
    return {"status": "ok", "provider": adapter.provider, "bucket": adapter.bucket}


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "database": await _check_db(),
        "redis": await _check_redis(),
        "storage": await _check_storage(),
    }
    ready = all(check.get("status") == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }

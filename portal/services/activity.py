from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ValidationError
from portal.core.logging import get_activity_logger
from portal.core.settings import settings
from portal.core.tenant import Actor, scoped_org_id
from portal.models.activity_log import ActivityLog
from portal.schemas.activity import ActivityFilters, ActivityLogDTO, ActivityPage

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


async def record_activity(
    db: AsyncSession,
    *,
    actor_id: UUID | None,
    org_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: UUID | str,
    resource_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Append an access-log entry without ever failing the caller.

    The insert runs in a savepoint so a storage failure rolls back only the
    log entry and leaves the surrounding operation intact.
    """
    entry = ActivityLog(
        actor_id=actor_id,
        organization_id=org_id,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        resource_name=resource_name,
        details=jsonable_encoder(details) if details else None,
    )
    # Pending caller changes are flushed here; their errors belong to the caller.
    await db.flush()
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError as exc:
        logger.warning(
            "Failed to record activity action=%s resource=%s/%s: %s",
            action,
            resource_type,
            resource_id,
            exc,
        )
        return
    get_activity_logger().info(
        "%s %s/%s",
        action,
        resource_type,
        resource_id,
        extra={
            "activity": {
                "actor_id": str(actor_id) if actor_id else None,
                "org_id": str(org_id) if org_id else None,
                "resource_name": resource_name,
            }
        },
    )


def encode_cursor(entry: ActivityLog) -> str:
    raw = json.dumps({"t": entry.created_at.isoformat(), "id": entry.id})
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    try:
        raw = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return datetime.fromisoformat(raw["t"]), int(raw["id"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError) as exc:
        raise ValidationError("Invalid cursor") from exc


async def list_activity(
    db: AsyncSession,
    actor: Actor,
    filters: ActivityFilters | None = None,
    *,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> ActivityPage:
    filters = filters or ActivityFilters()
    if limit < 1:
        raise ValidationError("limit must be positive")
    limit = min(limit, settings.activity_page_size_max)

    stmt = select(ActivityLog)
    org_id = scoped_org_id(actor, filters.org_id)
    if org_id is not None:
        stmt = stmt.where(ActivityLog.organization_id == org_id)
    if filters.actor_id:
        stmt = stmt.where(ActivityLog.actor_id == filters.actor_id)
    if filters.action:
        stmt = stmt.where(ActivityLog.action == filters.action)
    if filters.resource_type:
        stmt = stmt.where(ActivityLog.resource_type == filters.resource_type)
    if filters.resource_id:
        stmt = stmt.where(ActivityLog.resource_id == filters.resource_id)
    if cursor:
        created_at, last_id = decode_cursor(cursor)
        stmt = stmt.where(
            or_(
                ActivityLog.created_at < created_at,
                and_(ActivityLog.created_at == created_at, ActivityLog.id < last_id),
            )
        )
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit + 1)

    rows = list((await db.execute(stmt)).scalars().all())
    has_more = len(rows) > limit
    rows = rows[:limit]
    return ActivityPage(
        items=[ActivityLogDTO.model_validate(row) for row in rows],
        next_cursor=encode_cursor(rows[-1]) if has_more and rows else None,
        has_more=has_more,
    )

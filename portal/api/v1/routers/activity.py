from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.schemas.activity import ActivityFilters, ActivityPage
from portal.services import activity


router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=ActivityPage, summary="Page through the access log")
async def list_activity(
    cursor: str | None = None,
    limit: int = Query(default=activity.DEFAULT_PAGE_SIZE, ge=1),
    filters: ActivityFilters = Depends(),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ActivityPage:
    return await activity.list_activity(db, actor, filters, cursor=cursor, limit=limit)

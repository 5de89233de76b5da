from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.schemas.service_types import (
    ServiceTypeCreate,
    ServiceTypeDTO,
    ServiceTypeListResponse,
    ServiceTypeUpdate,
)
from portal.services import service_types


router = APIRouter(prefix="/service-types", tags=["service-types"])


@router.get("", response_model=ServiceTypeListResponse, summary="List service types")
async def list_service_types(
    include_inactive: bool = False,
    _: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ServiceTypeListResponse:
    rows = await service_types.list_service_types(db, include_inactive=include_inactive)
    items = [ServiceTypeDTO.model_validate(row) for row in rows]
    return ServiceTypeListResponse(items=items, total=len(items))


@router.get("/{code}", response_model=ServiceTypeDTO, summary="Get a service type by code")
async def get_service_type(
    code: str,
    _: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ServiceTypeDTO:
    return ServiceTypeDTO.model_validate(await service_types.get_service_type_by_code(db, code))


@router.post(
    "",
    response_model=ServiceTypeDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a service type",
)
async def create_service_type(
    payload: ServiceTypeCreate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ServiceTypeDTO:
    row = await service_types.create_service_type(db, actor, **payload.model_dump())
    return ServiceTypeDTO.model_validate(row)


@router.patch("/{service_type_id}", response_model=ServiceTypeDTO, summary="Update a service type")
async def update_service_type(
    service_type_id: UUID,
    payload: ServiceTypeUpdate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ServiceTypeDTO:
    row = await service_types.update_service_type(
        db, actor, service_type_id, **payload.model_dump(exclude_unset=True)
    )
    return ServiceTypeDTO.model_validate(row)

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.schemas.organizations import (
    OrganizationCreate,
    OrganizationDTO,
    OrganizationListResponse,
    OrganizationUpdate,
)
from portal.services import organizations


router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("", response_model=OrganizationListResponse, summary="List client organizations")
async def list_organizations(
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OrganizationListResponse:
    items = [
        OrganizationDTO.model_validate(org)
        for org in await organizations.list_organizations(db, actor)
    ]
    return OrganizationListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=OrganizationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a client organization",
)
async def create_organization(
    payload: OrganizationCreate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OrganizationDTO:
    org = await organizations.create_organization(db, actor, **payload.model_dump())
    return OrganizationDTO.model_validate(org)


@router.get("/{org_id}", response_model=OrganizationDTO, summary="Get an organization")
async def get_organization(
    org_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OrganizationDTO:
    return OrganizationDTO.model_validate(await organizations.get_organization(db, actor, org_id))


@router.patch("/{org_id}", response_model=OrganizationDTO, summary="Update an organization")
async def update_organization(
    org_id: UUID,
    payload: OrganizationUpdate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> OrganizationDTO:
    org = await organizations.update_organization(db, actor, org_id, **payload.model_dump())
    return OrganizationDTO.model_validate(org)


@router.delete(
    "/{org_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an organization with no remaining records",
)
async def delete_organization(
    org_id: UUID,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db_session),
) -> None:
    await organizations.delete_organization(db, actor, org_id)
    return None

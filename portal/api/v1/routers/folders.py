from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.schemas.folders import (
    BreadcrumbItem,
    BreadcrumbResponse,
    FolderCreate,
    FolderDTO,
    FolderListResponse,
    FolderMove,
    FolderTreeResponse,
    FolderUpdate,
)
from portal.services import folders


router = APIRouter(prefix="/folders", tags=["folders"])


@router.post(
    "",
    response_model=FolderDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a folder",
)
async def create_folder(
    payload: FolderCreate,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderDTO:
    folder = await folders.create_folder(
        db,
        actor,
        org_id=payload.org_id,
        name=payload.name,
        parent_id=payload.parent_id,
        service_type_id=payload.service_type_id,
        description=payload.description,
        color=payload.color,
    )
    return FolderDTO.model_validate(folder)


@router.get("", response_model=FolderListResponse, summary="List direct child folders")
async def list_children(
    org_id: UUID,
    parent_id: UUID | None = None,
    service_type_id: UUID | None = None,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderListResponse:
    items = await folders.list_children(
        db, actor, org_id=org_id, parent_id=parent_id, service_type_id=service_type_id
    )
    return FolderListResponse(items=items, total=len(items))


@router.get("/tree", response_model=FolderTreeResponse, summary="Folder hierarchy")
async def get_tree(
    org_id: UUID,
    service_type_id: UUID | None = None,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderTreeResponse:
    items = await folders.get_tree(db, actor, org_id=org_id, service_type_id=service_type_id)
    return FolderTreeResponse(items=items)


@router.get("/{folder_id}", response_model=FolderDTO, summary="Get a folder")
async def get_folder(
    folder_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderDTO:
    folder = await folders.get_folder(db, actor, folder_id)
    counts = await folders.folder_document_counts(db, [folder.id])
    return FolderDTO.model_validate(folder).model_copy(
        update={"document_count": counts.get(folder.id, 0)}
    )


@router.get(
    "/{folder_id}/breadcrumb",
    response_model=BreadcrumbResponse,
    summary="Path from the root to a folder",
)
async def get_breadcrumb(
    folder_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> BreadcrumbResponse:
    crumbs = await folders.get_breadcrumb(db, actor, folder_id)
    return BreadcrumbResponse(items=[BreadcrumbItem(**crumb) for crumb in crumbs])


@router.patch("/{folder_id}", response_model=FolderDTO, summary="Rename or restyle a folder")
async def update_folder(
    folder_id: UUID,
    payload: FolderUpdate,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderDTO:
    folder = await folders.update_folder(db, actor, folder_id, **payload.model_dump())
    return FolderDTO.model_validate(folder)


@router.post("/{folder_id}/move", response_model=FolderDTO, summary="Move a folder")
async def move_folder(
    folder_id: UUID,
    payload: FolderMove,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> FolderDTO:
    folder = await folders.move_folder(db, actor, folder_id, payload.parent_id)
    return FolderDTO.model_validate(folder)


@router.delete(
    "/{folder_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an empty folder",
)
async def delete_folder(
    folder_id: UUID,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> None:
    await folders.delete_folder(db, actor, folder_id)
    return None

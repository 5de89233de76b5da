from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.models.document_request import DocumentRequest
from portal.schemas.common import CountResponse, RequestStatus
from portal.schemas.document_requests import (
    DocumentRequestCreate,
    DocumentRequestDTO,
    DocumentRequestListResponse,
    DocumentRequestReject,
    DocumentRequestUpload,
)
from portal.services import document_requests
from portal.services.storage.adapter import StorageAdapter


router = APIRouter(prefix="/document-requests", tags=["document-requests"])


async def _to_dto(db: AsyncSession, actor: Actor, req: DocumentRequest) -> DocumentRequestDTO:
    dto = DocumentRequestDTO.model_validate(req)
    if req.document_id is None:
        return dto
    linked = await document_requests.resolve_linked_document(db, actor, req)
    return dto.model_copy(update={"document_available": linked is not None})


@router.post(
    "",
    response_model=DocumentRequestDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Request a document from a client",
)
async def create_request(
    payload: DocumentRequestCreate,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestDTO:
    req = await document_requests.create_request(
        db,
        actor,
        org_id=payload.org_id,
        client_id=payload.client_id,
        title=payload.title,
        category=payload.category,
        description=payload.description,
        due_date=payload.due_date,
    )
    return await _to_dto(db, actor, req)


@router.get("", response_model=DocumentRequestListResponse, summary="List document requests")
async def list_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    org_id: UUID | None = None,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestListResponse:
    rows = await document_requests.list_requests(db, actor, status=status_filter, org_id=org_id)
    items = [await _to_dto(db, actor, row) for row in rows]
    return DocumentRequestListResponse(items=items, total=len(items))


@router.get(
    "/pending-count",
    response_model=CountResponse,
    summary="Count requests awaiting the caller",
)
async def pending_count(
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> CountResponse:
    return CountResponse(count=await document_requests.count_actionable_requests(db, actor))


@router.get("/{request_id}", response_model=DocumentRequestDTO, summary="Get a document request")
async def get_request(
    request_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestDTO:
    req = await document_requests.get_request(db, actor, request_id)
    return await _to_dto(db, actor, req)


@router.post(
    "/{request_id}/upload",
    response_model=DocumentRequestDTO,
    summary="Fulfil a document request with an uploaded file",
)
async def submit_upload(
    request_id: UUID,
    payload: DocumentRequestUpload,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DocumentRequestDTO:
    req = await document_requests.submit_upload(
        db, actor, adapter, request_id, **payload.model_dump()
    )
    return await _to_dto(db, actor, req)


@router.post(
    "/{request_id}/approve",
    response_model=DocumentRequestDTO,
    summary="Approve an uploaded document",
)
async def approve_request(
    request_id: UUID,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestDTO:
    req = await document_requests.approve_request(db, actor, request_id)
    return await _to_dto(db, actor, req)


@router.post(
    "/{request_id}/reject",
    response_model=DocumentRequestDTO,
    summary="Reject an uploaded document with a note",
)
async def reject_request(
    request_id: UUID,
    payload: DocumentRequestReject,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestDTO:
    req = await document_requests.reject_request(db, actor, request_id, payload.note)
    return await _to_dto(db, actor, req)


@router.post(
    "/{request_id}/cancel",
    response_model=DocumentRequestDTO,
    summary="Cancel a pending document request",
)
async def cancel_request(
    request_id: UUID,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentRequestDTO:
    req = await document_requests.cancel_request(db, actor, request_id)
    return await _to_dto(db, actor, req)

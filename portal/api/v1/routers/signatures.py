from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.tenant import Actor
from portal.models.signature import SignatureRequest
from portal.schemas.common import CountResponse, SignatureStatus
from portal.schemas.signatures import (
    DeclinePayload,
    SignatureRequestCreate,
    SignatureRequestDTO,
    SignatureRequestListResponse,
    SignPayload,
)
from portal.services import signatures


router = APIRouter(prefix="/signature-requests", tags=["signatures"])


def _to_dto(req: SignatureRequest) -> SignatureRequestDTO:
    data = {column.name: getattr(req, column.name) for column in req.__table__.columns}
    return SignatureRequestDTO(**data, display_status=signatures.display_status(req))


@router.post(
    "",
    response_model=SignatureRequestDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Ask a client to sign a document",
)
async def create_signature_request(
    payload: SignatureRequestCreate,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestDTO:
    req = await signatures.create_signature_request(db, actor, **payload.model_dump())
    return _to_dto(req)


@router.get("", response_model=SignatureRequestListResponse, summary="List signature requests")
async def list_signature_requests(
    org_id: UUID | None = None,
    status_filter: SignatureStatus | None = Query(default=None, alias="status"),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestListResponse:
    rows = await signatures.list_signature_requests(db, actor, org_id=org_id, status=status_filter)
    items = [_to_dto(row) for row in rows]
    return SignatureRequestListResponse(items=items, total=len(items))


@router.get("/pending-count", response_model=CountResponse, summary="Count open signature requests")
async def pending_count(
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> CountResponse:
    return CountResponse(count=await signatures.count_pending_signatures(db, actor))


@router.get("/{request_id}", response_model=SignatureRequestDTO, summary="Get a signature request")
async def get_signature_request(
    request_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestDTO:
    return _to_dto(await signatures.get_signature_request(db, actor, request_id))


@router.post("/{request_id}/sign", response_model=SignatureRequestDTO, summary="Sign a document")
async def sign(
    request_id: UUID,
    payload: SignPayload,
    request: Request,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestDTO:
    req = await signatures.sign(
        db,
        actor,
        request_id,
        signature_type=payload.signature_type,
        signature_data=payload.signature_data,
        legal_name=payload.legal_name,
        agreed_to_terms=payload.agreed_to_terms,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return _to_dto(req)


@router.post(
    "/{request_id}/decline",
    response_model=SignatureRequestDTO,
    summary="Decline to sign a document",
)
async def decline(
    request_id: UUID,
    payload: DeclinePayload,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestDTO:
    return _to_dto(await signatures.decline(db, actor, request_id, reason=payload.reason))


@router.post(
    "/{request_id}/cancel",
    response_model=SignatureRequestDTO,
    summary="Cancel a pending signature request",
)
async def cancel(
    request_id: UUID,
    actor: Actor = Depends(deps.require_staff),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SignatureRequestDTO:
    return _to_dto(await signatures.cancel(db, actor, request_id))

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from portal.core.permissions import Role
from portal.core.tenant import Actor, ensure_org_access, require_staff, scoped_org_id
from portal.db.transaction import atomic
from portal.models.document import Document
from portal.models.document_request import DocumentRequest
from portal.models.organization import Organization
from portal.models.types import utcnow
from portal.models.user import User
from portal.schemas.common import RequestStatus
from portal.services.activity import record_activity
from portal.services.documents import find_live_document, parse_category, register_document
from portal.services.storage.adapter import StorageAdapter
from portal.services.uploads import validate_upload
from portal.services.versions import append_version

MAX_TITLE_LENGTH = 200

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.UPLOADED, RequestStatus.CANCELLED}),
    RequestStatus.UPLOADED: frozenset({RequestStatus.REVIEWED, RequestStatus.REJECTED}),
    RequestStatus.REJECTED: frozenset({RequestStatus.UPLOADED}),
    RequestStatus.REVIEWED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def allowed_sources(target: RequestStatus) -> list[str]:
    return sorted(status.value for status, targets in ALLOWED_TRANSITIONS.items() if target in targets)


async def _transition(
    db: AsyncSession,
    request_id: UUID,
    target: RequestStatus,
    **values,
) -> None:
    """Compare-and-swap the request status.

    Only rows still in a state that may move to ``target`` are updated, so a
    lost race or a stale read never overwrites a newer state.
    """
    result = await db.execute(
        update(DocumentRequest)
        .where(
            DocumentRequest.id == request_id,
            DocumentRequest.status.in_(allowed_sources(target)),
        )
        .values(status=target.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return
    current = (
        await db.execute(select(DocumentRequest.status).where(DocumentRequest.id == request_id))
    ).scalar_one_or_none()
    if current is None:
        raise NotFoundError("Document request not found")
    raise InvalidStateTransitionError(
        f"Cannot move document request from '{current}' to '{target.value}'",
        current_state=current,
    )


async def _get_request(db: AsyncSession, request_id: UUID) -> DocumentRequest:
    req = await db.get(DocumentRequest, request_id)
    if not req:
        raise NotFoundError("Document request not found")
    return req


async def get_request(db: AsyncSession, actor: Actor, request_id: UUID) -> DocumentRequest:
    req = await _get_request(db, request_id)
    ensure_org_access(actor, req.organization_id)
    return req


async def resolve_linked_document(
    db: AsyncSession, actor: Actor, req: DocumentRequest
) -> Document | None:
    """Return the linked document, or None when it is no longer available."""
    ensure_org_access(actor, req.organization_id)
    return await find_live_document(db, req.document_id)


async def create_request(
    db: AsyncSession,
    actor: Actor,
    *,
    org_id: UUID,
    client_id: UUID,
    title: str,
    category: str,
    description: str | None = None,
    due_date: date | None = None,
) -> DocumentRequest:
    require_staff(actor)
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationError("Title is required")
    if len(cleaned_title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be {MAX_TITLE_LENGTH} characters or less")
    parsed_category = parse_category(category)

    async with atomic(db):
        if not await db.get(Organization, org_id):
            raise NotFoundError("Organization not found")
        client = await db.get(User, client_id)
        if not client:
            raise NotFoundError("Client not found")
        if client.role != Role.CLIENT.value:
            raise ValidationError("Document requests can only be sent to client users")
        if client.organization_id != org_id:
            raise ValidationError("Client does not belong to this organization")

        req = DocumentRequest(
            organization_id=org_id,
            client_id=client_id,
            requested_by=actor.user_id,
            title=cleaned_title,
            description=(description or "").strip() or None,
            category=parsed_category.value,
            due_date=due_date,
            status=RequestStatus.PENDING.value,
            created_at=utcnow(),
        )
        db.add(req)
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=org_id,
            action="requested_document",
            resource_type="document_request",
            resource_id=req.id,
            resource_name=req.title,
            details={"client_id": client_id, "category": req.category},
        )
    await db.refresh(req)
    return req


async def submit_upload(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    request_id: UUID,
    *,
    storage_key: str,
    file_name: str,
    content_type: str,
    size_bytes: int,
) -> DocumentRequest:
    """Fulfil a pending or rejected request with an uploaded file.

    A re-upload after rejection appends a version to the linked document when
    it still exists; otherwise a new document is registered.
    """
    validate_upload(file_name, content_type, size_bytes)
    async with atomic(db):
        req = await _get_request(db, request_id)
        if actor.user_id != req.client_id:
            raise PermissionDeniedError("Only the requested client can upload for this request")
        # Early exit before touching storage; the status CAS below stays authoritative.
        if not can_transition(RequestStatus(req.status), RequestStatus.UPLOADED):
            raise InvalidStateTransitionError(
                f"Cannot upload to a document request in state '{req.status}'",
                current_state=req.status,
            )

        linked = await find_live_document(db, req.document_id)
        if linked is not None:
            await append_version(
                db,
                actor,
                adapter,
                linked,
                storage_key=storage_key,
                file_name=file_name,
                content_type=content_type,
                size_bytes=size_bytes,
            )
            document_id = linked.id
        else:
            doc = await register_document(
                db,
                actor,
                adapter,
                org_id=req.organization_id,
                name=file_name,
                content_type=content_type,
                size_bytes=size_bytes,
                storage_key=storage_key,
                category=req.category,
            )
            document_id = doc.id

        await _transition(
            db,
            req.id,
            RequestStatus.UPLOADED,
            document_id=document_id,
            uploaded_at=utcnow(),
        )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="fulfilled_document_request",
            resource_type="document_request",
            resource_id=req.id,
            resource_name=req.title,
            details={"document_id": document_id},
        )
    await db.refresh(req)
    if linked is not None:
        await db.refresh(linked)
    return req


async def approve_request(db: AsyncSession, actor: Actor, request_id: UUID) -> DocumentRequest:
    require_staff(actor)
    async with atomic(db):
        req = await _get_request(db, request_id)
        await _transition(
            db,
            req.id,
            RequestStatus.REVIEWED,
            reviewed_at=utcnow(),
            reviewed_by=actor.user_id,
            review_note=None,
        )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="approved_document",
            resource_type="document_request",
            resource_id=req.id,
            resource_name=req.title,
        )
    await db.refresh(req)
    return req


async def reject_request(
    db: AsyncSession, actor: Actor, request_id: UUID, note: str
) -> DocumentRequest:
    require_staff(actor)
    cleaned_note = (note or "").strip()
    if not cleaned_note:
        raise ValidationError("A review note is required when rejecting a document")
    async with atomic(db):
        req = await _get_request(db, request_id)
        await _transition(
            db,
            req.id,
            RequestStatus.REJECTED,
            reviewed_at=utcnow(),
            reviewed_by=actor.user_id,
            review_note=cleaned_note,
        )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="rejected_document",
            resource_type="document_request",
            resource_id=req.id,
            resource_name=req.title,
            details={"note": cleaned_note},
        )
    await db.refresh(req)
    return req


async def cancel_request(db: AsyncSession, actor: Actor, request_id: UUID) -> DocumentRequest:
    require_staff(actor)
    async with atomic(db):
        req = await _get_request(db, request_id)
        await _transition(db, req.id, RequestStatus.CANCELLED)
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="cancelled_document_request",
            resource_type="document_request",
            resource_id=req.id,
            resource_name=req.title,
        )
    await db.refresh(req)
    return req


def _parse_status(value: str | RequestStatus) -> RequestStatus:
    try:
        return RequestStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid status '{value}'") from exc


async def list_requests(
    db: AsyncSession,
    actor: Actor,
    *,
    status: str | RequestStatus | None = None,
    org_id: UUID | None = None,
) -> list[DocumentRequest]:
    """Soonest due date first, undated requests last, newest first within ties."""
    stmt = select(DocumentRequest)
    scoped = scoped_org_id(actor, org_id)
    if scoped is not None:
        stmt = stmt.where(DocumentRequest.organization_id == scoped)
    if status is not None:
        stmt = stmt.where(DocumentRequest.status == _parse_status(status).value)
    stmt = stmt.order_by(DocumentRequest.created_at.desc())
    rows = list((await db.execute(stmt)).scalars().all())
    return sorted(rows, key=lambda r: (r.due_date is None, r.due_date or date.max))


async def count_actionable_requests(db: AsyncSession, actor: Actor) -> int:
    """Staff: uploads awaiting review. Clients: requests waiting on them."""
    stmt = select(func.count()).select_from(DocumentRequest)
    if actor.is_staff:
        stmt = stmt.where(DocumentRequest.status == RequestStatus.UPLOADED.value)
    else:
        org_id = scoped_org_id(actor, None)
        stmt = stmt.where(
            DocumentRequest.organization_id == org_id,
            DocumentRequest.status.in_(
                [RequestStatus.PENDING.value, RequestStatus.REJECTED.value]
            ),
        )
    return (await db.execute(stmt)).scalar_one() or 0

from __future__ import annotations

import re
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from portal.core.tenant import Actor, ensure_org_access, require_staff, scoped_org_id
from portal.db.transaction import atomic
from portal.models.signature import Signature, SignatureRequest
from portal.models.types import utcnow
from portal.schemas.common import SignatureStatus, SignatureType
from portal.services.activity import record_activity
from portal.services.documents import get_document

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_LEGAL_NAME_LENGTH = 200
MAX_IMAGE_SIGNATURE_BYTES = 500 * 1024

_IMAGE_DATA_URL = re.compile(r"^data:image/(png|jpeg|jpg|gif|svg\+xml);base64,[A-Za-z0-9+/]+=*$")


def display_status(req: SignatureRequest, now: datetime | None = None) -> SignatureStatus:
    """Status shown to users; ``expired`` is derived here and never stored."""
    now = now or utcnow()
    if (
        req.status == SignatureStatus.PENDING.value
        and req.expires_at is not None
        and req.expires_at < now
    ):
        return SignatureStatus.EXPIRED
    return SignatureStatus(req.status)


def validate_signature_data(signature_type: SignatureType, data: str) -> None:
    if signature_type in (SignatureType.DRAW, SignatureType.UPLOAD):
        if not _IMAGE_DATA_URL.match(data or ""):
            raise ValidationError("Signature must be a base64 encoded image data URL")
        if len(data) > MAX_IMAGE_SIGNATURE_BYTES:
            raise ValidationError("Signature image is too large (max 500KB)")
        return
    typed = (data or "").strip()
    if len(typed) < 2 or len(typed) > 200:
        raise ValidationError("Typed signature must be between 2 and 200 characters")


async def _get_signature_request(db: AsyncSession, request_id: UUID) -> SignatureRequest:
    req = await db.get(SignatureRequest, request_id)
    if not req:
        raise NotFoundError("Signature request not found")
    return req


async def get_signature_request(
    db: AsyncSession, actor: Actor, request_id: UUID
) -> SignatureRequest:
    req = await _get_signature_request(db, request_id)
    ensure_org_access(actor, req.organization_id)
    return req


async def _close_pending(
    db: AsyncSession,
    req: SignatureRequest,
    target: SignatureStatus,
    now: datetime,
    **values,
) -> None:
    """Move a pending, unexpired request to ``target`` with a conditional update."""
    current = display_status(req, now)
    if current != SignatureStatus.PENDING:
        raise InvalidStateTransitionError(
            f"Signature request is {current.value}", current_state=current.value
        )
    result = await db.execute(
        update(SignatureRequest)
        .where(
            SignatureRequest.id == req.id,
            SignatureRequest.status == SignatureStatus.PENDING.value,
        )
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        latest = (
            await db.execute(select(SignatureRequest.status).where(SignatureRequest.id == req.id))
        ).scalar_one()
        raise InvalidStateTransitionError(
            f"Signature request is {latest}", current_state=latest
        )


async def create_signature_request(
    db: AsyncSession,
    actor: Actor,
    *,
    document_id: UUID,
    title: str,
    description: str | None = None,
    expires_at: datetime | None = None,
) -> SignatureRequest:
    require_staff(actor)
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationError("Title is required")
    if len(cleaned_title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be {MAX_TITLE_LENGTH} characters or less")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")
    if expires_at is not None and expires_at.tzinfo is None:
        raise ValidationError("expires_at must include a timezone")

    async with atomic(db):
        doc = await get_document(db, actor, document_id)
        existing = (
            await db.execute(
                select(SignatureRequest.id).where(
                    SignatureRequest.document_id == doc.id,
                    SignatureRequest.status == SignatureStatus.PENDING.value,
                )
            )
        ).first()
        if existing:
            raise ConflictError("A signature request is already pending for this document")

        req = SignatureRequest(
            organization_id=doc.organization_id,
            document_id=doc.id,
            title=cleaned_title,
            description=(description or "").strip() or None,
            status=SignatureStatus.PENDING.value,
            requested_by=actor.user_id,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        db.add(req)
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=doc.organization_id,
            action="requested_signature",
            resource_type="signature_request",
            resource_id=req.id,
            resource_name=req.title,
            details={"document_id": doc.id},
        )
    await db.refresh(req)
    return req


async def sign(
    db: AsyncSession,
    actor: Actor,
    request_id: UUID,
    *,
    signature_type: SignatureType,
    signature_data: str,
    legal_name: str,
    agreed_to_terms: bool,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SignatureRequest:
    cleaned_name = (legal_name or "").strip()
    if not cleaned_name:
        raise ValidationError("Legal name is required")
    if len(cleaned_name) > MAX_LEGAL_NAME_LENGTH:
        raise ValidationError(f"Legal name must be {MAX_LEGAL_NAME_LENGTH} characters or less")
    if not agreed_to_terms:
        raise ValidationError("You must agree to the terms to sign")
    signature_type = SignatureType(signature_type)
    validate_signature_data(signature_type, signature_data)

    async with atomic(db):
        req = await get_signature_request(db, actor, request_id)
        now = utcnow()
        await _close_pending(
            db, req, SignatureStatus.SIGNED, now, signed_by=actor.user_id, signed_at=now
        )
        db.add(
            Signature(
                signature_request_id=req.id,
                user_id=actor.user_id,
                signature_type=signature_type.value,
                signature_data=signature_data,
                legal_name=cleaned_name,
                agreed_to_terms=True,
                ip_address=ip_address,
                user_agent=user_agent,
                signed_at=now,
            )
        )
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="signed_document",
            resource_type="signature_request",
            resource_id=req.id,
            resource_name=req.title,
            details={"document_id": req.document_id, "signature_type": signature_type.value},
        )
    await db.refresh(req)
    return req


async def decline(
    db: AsyncSession, actor: Actor, request_id: UUID, *, reason: str | None = None
) -> SignatureRequest:
    async with atomic(db):
        req = await get_signature_request(db, actor, request_id)
        now = utcnow()
        await _close_pending(
            db,
            req,
            SignatureStatus.DECLINED,
            now,
            declined_at=now,
            decline_reason=(reason or "").strip() or None,
        )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="declined_signature",
            resource_type="signature_request",
            resource_id=req.id,
            resource_name=req.title,
        )
    await db.refresh(req)
    return req


async def cancel(db: AsyncSession, actor: Actor, request_id: UUID) -> SignatureRequest:
    require_staff(actor)
    async with atomic(db):
        req = await _get_signature_request(db, request_id)
        result = await db.execute(
            update(SignatureRequest)
            .where(
                SignatureRequest.id == req.id,
                SignatureRequest.status == SignatureStatus.PENDING.value,
            )
            .values(status=SignatureStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            latest = (
                await db.execute(select(SignatureRequest.status).where(SignatureRequest.id == req.id))
            ).scalar_one()
            raise InvalidStateTransitionError(
                f"Signature request is {latest}", current_state=latest
            )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=req.organization_id,
            action="cancelled_signature_request",
            resource_type="signature_request",
            resource_id=req.id,
            resource_name=req.title,
        )
    await db.refresh(req)
    return req


async def list_signature_requests(
    db: AsyncSession,
    actor: Actor,
    *,
    org_id: UUID | None = None,
    status: SignatureStatus | None = None,
) -> list[SignatureRequest]:
    stmt = select(SignatureRequest)
    scoped = scoped_org_id(actor, org_id)
    if scoped is not None:
        stmt = stmt.where(SignatureRequest.organization_id == scoped)
    stmt = stmt.order_by(SignatureRequest.created_at.desc())
    rows = list((await db.execute(stmt)).scalars().all())
    if status is not None:
        now = utcnow()
        rows = [row for row in rows if display_status(row, now) == status]
    return rows


async def count_pending_signatures(db: AsyncSession, actor: Actor) -> int:
    now = utcnow()
    stmt = (
        select(func.count())
        .select_from(SignatureRequest)
        .where(
            SignatureRequest.status == SignatureStatus.PENDING.value,
            (SignatureRequest.expires_at.is_(None)) | (SignatureRequest.expires_at >= now),
        )
    )
    scoped = scoped_org_id(actor, None)
    if scoped is not None:
        stmt = stmt.where(SignatureRequest.organization_id == scoped)
    return (await db.execute(stmt)).scalar_one() or 0

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.core.tenant import Actor, ensure_org_access, require_admin, require_staff
from portal.db.transaction import atomic
from portal.models.document import Document
from portal.models.document_request import DocumentRequest
from portal.models.folder import Folder
from portal.models.organization import Organization
from portal.models.signature import SignatureRequest
from portal.models.types import utcnow
from portal.models.user import User
from portal.services.activity import record_activity

MAX_NAME_LENGTH = 200

# Tables whose rows pin an organization in place.
_DEPENDENTS = (
    ("users", User, User.organization_id),
    ("documents", Document, Document.organization_id),
    ("folders", Folder, Folder.organization_id),
    ("document requests", DocumentRequest, DocumentRequest.organization_id),
    ("signature requests", SignatureRequest, SignatureRequest.organization_id),
)


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Organization name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Organization name must be {MAX_NAME_LENGTH} characters or less")
    return cleaned


async def get_organization(db: AsyncSession, actor: Actor, org_id: UUID) -> Organization:
    ensure_org_access(actor, org_id)
    org = await db.get(Organization, org_id)
    if not org:
        raise NotFoundError("Organization not found")
    return org


async def list_organizations(db: AsyncSession, actor: Actor) -> list[Organization]:
    require_staff(actor)
    stmt = select(Organization).order_by(func.lower(Organization.name))
    return list((await db.execute(stmt)).scalars().all())


async def create_organization(
    db: AsyncSession,
    actor: Actor,
    *,
    name: str,
    email: str,
    registration_number: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Organization:
    require_admin(actor)
    cleaned = _clean_name(name)
    async with atomic(db):
        org = Organization(
            name=cleaned,
            email=email.strip().lower(),
            registration_number=registration_number,
            phone=phone,
            address=address,
            created_by=actor.user_id,
            created_at=utcnow(),
        )
        db.add(org)
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=org.id,
            action="created_organization",
            resource_type="organization",
            resource_id=org.id,
            resource_name=org.name,
        )
    await db.refresh(org)
    return org


async def update_organization(
    db: AsyncSession,
    actor: Actor,
    org_id: UUID,
    *,
    name: str | None = None,
    email: str | None = None,
    registration_number: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Organization:
    require_admin(actor)
    async with atomic(db):
        org = await get_organization(db, actor, org_id)
        if name is not None:
            org.name = _clean_name(name)
        if email is not None:
            org.email = email.strip().lower()
        if registration_number is not None:
            org.registration_number = registration_number
        if phone is not None:
            org.phone = phone
        if address is not None:
            org.address = address
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=org.id,
            action="updated_organization",
            resource_type="organization",
            resource_id=org.id,
            resource_name=org.name,
        )
    await db.refresh(org)
    return org


async def delete_organization(db: AsyncSession, actor: Actor, org_id: UUID) -> None:
    """Delete an organization that nothing references any more."""
    require_admin(actor)
    async with atomic(db):
        org = await get_organization(db, actor, org_id)
        blocking = []
        for label, model, column in _DEPENDENTS:
            count = (
                await db.execute(select(func.count()).select_from(model).where(column == org.id))
            ).scalar_one()
            if count:
                blocking.append(label)
        if blocking:
            raise ConflictError(
                f"Organization still has {', '.join(blocking)}",
                details={"blocking": blocking},
            )
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=None,
            action="deleted_organization",
            resource_type="organization",
            resource_id=org.id,
            resource_name=org.name,
        )
        await db.delete(org)

from __future__ import annotations

import logging
import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.core.tenant import Actor, require_admin
from portal.db.transaction import atomic
from portal.models.service_type import ServiceType

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
_UPDATABLE_FIELDS = {"name", "description", "icon", "color", "is_active", "display_order"}

DEFAULT_SERVICE_TYPES = [
    {
        "code": "accounting",
        "name": "Accounting",
        "description": "Bookkeeping, financial statements, and accounting services",
        "icon": "calculator",
        "color": "blue",
        "display_order": 1,
    },
    {
        "code": "taxation",
        "name": "Taxation",
        "description": "Tax returns, tax planning, and compliance",
        "icon": "receipt",
        "color": "emerald",
        "display_order": 2,
    },
    {
        "code": "advisory",
        "name": "Advisory",
        "description": "Business advisory and consulting services",
        "icon": "lightbulb",
        "color": "violet",
        "display_order": 3,
    },
    {
        "code": "cosec",
        "name": "Company Secretary",
        "description": "Corporate secretarial and statutory compliance",
        "icon": "building",
        "color": "amber",
        "display_order": 4,
    },
    {
        "code": "payroll",
        "name": "Payroll",
        "description": "Payroll processing and employee payments",
        "icon": "users",
        "color": "cyan",
        "display_order": 5,
    },
    {
        "code": "other",
        "name": "Other",
        "description": "Other documents and miscellaneous files",
        "icon": "folder",
        "color": "gray",
        "display_order": 99,
    },
]


def normalize_code(code: str) -> str:
    cleaned = (code or "").strip().lower()
    if not _CODE_RE.fullmatch(cleaned):
        raise ValidationError(
            "Service code may only contain lowercase letters, numbers, '-' and '_'"
        )
    return cleaned


async def list_service_types(
    db: AsyncSession, *, include_inactive: bool = False
) -> list[ServiceType]:
    stmt = select(ServiceType)
    if not include_inactive:
        stmt = stmt.where(ServiceType.is_active.is_(True))
    stmt = stmt.order_by(ServiceType.display_order.asc(), ServiceType.name.asc())
    return list((await db.execute(stmt)).scalars().all())


async def get_service_type_by_code(db: AsyncSession, code: str) -> ServiceType:
    stmt = select(ServiceType).where(ServiceType.code == (code or "").strip().lower())
    service = (await db.execute(stmt)).scalar_one_or_none()
    if not service:
        raise NotFoundError("Service type not found")
    return service


async def create_service_type(
    db: AsyncSession,
    actor: Actor,
    *,
    code: str,
    name: str,
    description: str | None = None,
    icon: str = "folder",
    color: str = "gray",
    display_order: int = 0,
) -> ServiceType:
    require_admin(actor)
    normalized = normalize_code(code)
    async with atomic(db):
        existing = (
            await db.execute(select(ServiceType.id).where(ServiceType.code == normalized))
        ).first()
        if existing:
            raise ConflictError(f"Service type '{normalized}' already exists")
        service = ServiceType(
            code=normalized,
            name=name.strip(),
            description=description,
            icon=icon,
            color=color,
            is_active=True,
            display_order=display_order,
        )
        db.add(service)
    await db.refresh(service)
    return service


async def update_service_type(
    db: AsyncSession,
    actor: Actor,
    service_type_id: UUID,
    **changes,
) -> ServiceType:
    """Update display attributes; the code is immutable."""
    require_admin(actor)
    if "code" in changes:
        raise ValidationError("Service type code cannot be changed")
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    async with atomic(db):
        service = await db.get(ServiceType, service_type_id)
        if not service:
            raise NotFoundError("Service type not found")
        for field, value in changes.items():
            if value is not None:
                setattr(service, field, value)
    await db.refresh(service)
    return service


async def seed_default_service_types(db: AsyncSession) -> list[ServiceType]:
    existing = set((await db.execute(select(ServiceType.code))).scalars().all())
    created: list[ServiceType] = []
    for entry in DEFAULT_SERVICE_TYPES:
        if entry["code"] in existing:
            continue
        service = ServiceType(is_active=True, **entry)
        db.add(service)
        created.append(service)
    if created:
        await db.commit()
        logger.info("Seeded %d default service types", len(created))
    return created

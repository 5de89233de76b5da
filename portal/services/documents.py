from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import NotFoundError, UpstreamStorageError, ValidationError
from portal.core.settings import settings
from portal.core.tenant import Actor, ensure_org_access, scoped_org_id
from portal.db.transaction import atomic
from portal.models.document import Document, DocumentVersion
from portal.models.folder import Folder
from portal.models.organization import Organization
from portal.models.service_type import ServiceType
from portal.models.types import utcnow
from portal.schemas.common import Disposition, DocumentCategory, DocumentSortField, SortOrder
from portal.schemas.documents import DocumentFilters
from portal.services.activity import record_activity
from portal.services.storage.adapter import StorageAdapter
from portal.services.storage.service import call_adapter
from portal.services.uploads import (
    ensure_org_scoped_key,
    store_upload,
    validate_content_policy,
    validate_upload,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255

_SORT_KEYS = {
    DocumentSortField.UPLOADED_AT: lambda doc: doc.uploaded_at,
    DocumentSortField.NAME: lambda doc: doc.name.lower(),
    DocumentSortField.SIZE: lambda doc: doc.size_bytes,
}


def parse_category(value: str | DocumentCategory | None) -> DocumentCategory:
    try:
        return DocumentCategory(value)
    except ValueError as exc:
        allowed = ", ".join(c.value for c in DocumentCategory)
        raise ValidationError(f"Invalid category '{value}'. Allowed: {allowed}") from exc


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Document name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Document name must be {MAX_NAME_LENGTH} characters or less")
    return cleaned


async def _get_live_document(db: AsyncSession, document_id: UUID) -> Document:
    doc = await db.get(Document, document_id)
    if not doc or doc.deleted_at is not None:
        raise NotFoundError("Document not found")
    return doc


async def get_document(db: AsyncSession, actor: Actor, document_id: UUID) -> Document:
    doc = await _get_live_document(db, document_id)
    ensure_org_access(actor, doc.organization_id)
    return doc


async def find_live_document(db: AsyncSession, document_id: UUID | None) -> Document | None:
    """Return the document if it still exists, otherwise None."""
    if document_id is None:
        return None
    doc = await db.get(Document, document_id)
    if not doc or doc.deleted_at is not None:
        return None
    return doc


async def register_document(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    *,
    org_id: UUID,
    name: str,
    content_type: str,
    size_bytes: int,
    storage_key: str,
    category: str | DocumentCategory,
    folder_id: UUID | None = None,
    service_type_id: UUID | None = None,
    description: str | None = None,
    fiscal_year: str | None = None,
    period: str | None = None,
    tags: list[str] | None = None,
) -> Document:
    """Validate, finalize and stage a new document without committing."""
    cleaned_name = _clean_name(name)
    if not (storage_key or "").strip():
        raise ValidationError("Storage key is required")
    parsed_category = parse_category(category)
    normalized_type = validate_content_policy(content_type, size_bytes)

    ensure_org_access(actor, org_id)
    if not await db.get(Organization, org_id):
        raise NotFoundError("Organization not found")
    ensure_org_scoped_key(org_id, storage_key)

    if folder_id is not None:
        folder = await db.get(Folder, folder_id)
        if not folder:
            raise NotFoundError("Folder not found")
        if folder.organization_id != org_id:
            raise ValidationError("Folder does not belong to this organization")
        if service_type_id is None:
            service_type_id = folder.service_type_id
    if service_type_id is not None and not await db.get(ServiceType, service_type_id):
        raise NotFoundError("Service type not found")

    await call_adapter("finalize", adapter.finalize_upload, storage_key)

    now = utcnow()
    doc = Document(
        organization_id=org_id,
        name=cleaned_name,
        description=description,
        content_type=normalized_type,
        size_bytes=size_bytes,
        category=parsed_category.value,
        folder_id=folder_id,
        service_type_id=service_type_id,
        storage_provider=adapter.provider,
        storage_bucket=adapter.bucket,
        storage_key=storage_key,
        current_version=1,
        fiscal_year=fiscal_year,
        period=period,
        tags=[tag.strip() for tag in tags if tag and tag.strip()] if tags else None,
        uploaded_by=actor.user_id,
        uploaded_at=now,
    )
    db.add(doc)
    await db.flush()
    db.add(
        DocumentVersion(
            document_id=doc.id,
            version=1,
            storage_key=storage_key,
            file_name=cleaned_name,
            content_type=normalized_type,
            size_bytes=size_bytes,
            uploaded_by=actor.user_id,
            uploaded_at=now,
        )
    )
    await db.flush()
    await record_activity(
        db,
        actor_id=actor.user_id,
        org_id=org_id,
        action="uploaded_document",
        resource_type="document",
        resource_id=doc.id,
        resource_name=doc.name,
        details={"category": doc.category, "size_bytes": size_bytes},
    )
    return doc


async def create_document(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    **fields,
) -> Document:
    async with atomic(db):
        doc = await register_document(db, actor, adapter, **fields)
    await db.refresh(doc)
    return doc


async def upload_document(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    *,
    org_id: UUID,
    file_name: str,
    content_type: str,
    data: bytes,
    category: str | DocumentCategory,
    name: str | None = None,
    **fields,
) -> Document:
    """Server-side upload: push bytes through the adapter, then register."""
    validate_upload(file_name, content_type, len(data))
    parse_category(category)
    ensure_org_access(actor, org_id)
    storage_key = await store_upload(
        adapter, org_id=org_id, file_name=file_name, content_type=content_type, data=data
    )
    return await create_document(
        db,
        actor,
        adapter,
        org_id=org_id,
        name=name or file_name,
        content_type=content_type,
        size_bytes=len(data),
        storage_key=storage_key,
        category=category,
        **fields,
    )


async def list_documents(
    db: AsyncSession,
    actor: Actor,
    filters: DocumentFilters | None = None,
) -> list[Document]:
    filters = filters or DocumentFilters()
    stmt = select(Document).where(Document.deleted_at.is_(None))
    org_id = scoped_org_id(actor, filters.org_id)
    if org_id is not None:
        stmt = stmt.where(Document.organization_id == org_id)
    if filters.category:
        stmt = stmt.where(Document.category == filters.category.value)
    if filters.folder_id:
        stmt = stmt.where(Document.folder_id == filters.folder_id)
    if filters.service_type_id:
        stmt = stmt.where(Document.service_type_id == filters.service_type_id)
    term = (filters.search or "").strip().lower()
    if term:
        stmt = stmt.where(
            or_(
                func.lower(Document.name).contains(term, autoescape=True),
                func.lower(func.coalesce(Document.description, "")).contains(term, autoescape=True),
            )
        )
    # A total order here makes ties in the in-memory sort below deterministic.
    stmt = stmt.order_by(Document.uploaded_at.asc(), Document.id.asc())
    docs = list((await db.execute(stmt)).scalars().all())
    return sorted(
        docs,
        key=_SORT_KEYS[filters.sort_by],
        reverse=filters.sort_order == SortOrder.DESC,
    )


async def count_documents(db: AsyncSession, actor: Actor, org_id: UUID | None = None) -> int:
    stmt = select(func.count()).select_from(Document).where(Document.deleted_at.is_(None))
    scoped = scoped_org_id(actor, org_id)
    if scoped is not None:
        stmt = stmt.where(Document.organization_id == scoped)
    return (await db.execute(stmt)).scalar_one() or 0


async def get_download_url(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    document_id: UUID,
    *,
    disposition: Disposition = Disposition.DOWNLOAD,
    expires_in: int | None = None,
) -> str:
    """Mint a fresh signed URL. Never cached: revocation takes effect at once."""
    doc = await get_document(db, actor, document_id)
    if not doc.storage_key:
        raise NotFoundError("Document has no stored file")
    url = await call_adapter(
        "download url",
        adapter.generate_download_url,
        doc.storage_key,
        expires_in or settings.signed_url_expiry_seconds,
        file_name=doc.name,
        inline=disposition == Disposition.PREVIEW,
    )
    action = "previewed_document" if disposition == Disposition.PREVIEW else "downloaded_document"
    await record_activity(
        db,
        actor_id=actor.user_id,
        org_id=doc.organization_id,
        action=action,
        resource_type="document",
        resource_id=doc.id,
        resource_name=doc.name,
    )
    await db.commit()
    return url


async def delete_document(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    document_id: UUID,
) -> None:
    doc = await get_document(db, actor, document_id)
    version_keys = (
        await db.execute(
            select(DocumentVersion.storage_key).where(DocumentVersion.document_id == doc.id)
        )
    ).scalars().all()
    keys = list(dict.fromkeys([doc.storage_key, *version_keys]))

    doc.deleted_at = utcnow()
    await record_activity(
        db,
        actor_id=actor.user_id,
        org_id=doc.organization_id,
        action="deleted_document",
        resource_type="document",
        resource_id=doc.id,
        resource_name=doc.name,
    )
    await db.commit()

    for key in keys:
        try:
            await call_adapter("delete", adapter.delete_object, key)
        except (NotFoundError, UpstreamStorageError) as exc:
            logger.warning("Stored object cleanup failed for key=%s: %s", key, exc)

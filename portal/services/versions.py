from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, NotFoundError
from portal.core.settings import settings
from portal.core.tenant import Actor
from portal.db.transaction import atomic
from portal.models.document import Document, DocumentVersion
from portal.models.types import utcnow
from portal.services.activity import record_activity
from portal.services.documents import get_document
from portal.services.storage.adapter import StorageAdapter
from portal.services.storage.service import call_adapter
from portal.services.uploads import ensure_org_scoped_key, validate_content_policy, validate_file_name


async def append_version(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    doc: Document,
    *,
    storage_key: str,
    file_name: str | None = None,
    content_type: str | None = None,
    size_bytes: int | None = None,
) -> int:
    """Stage version ``current_version + 1`` for a live document.

    The document row is bumped with a compare-and-swap on ``current_version``;
    a concurrent append that got there first leaves zero matched rows.
    """
    content_type = validate_content_policy(
        content_type or doc.content_type,
        size_bytes if size_bytes is not None else doc.size_bytes,
    )
    size_bytes = size_bytes if size_bytes is not None else doc.size_bytes
    file_name = validate_file_name(file_name) if file_name else doc.name
    ensure_org_scoped_key(doc.organization_id, storage_key)

    await call_adapter("finalize", adapter.finalize_upload, storage_key)

    expected = doc.current_version
    next_version = expected + 1
    now = utcnow()
    result = await db.execute(
        update(Document)
        .where(
            Document.id == doc.id,
            Document.current_version == expected,
            Document.deleted_at.is_(None),
        )
        .values(
            current_version=next_version,
            storage_key=storage_key,
            content_type=content_type,
            size_bytes=size_bytes,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(
            "Document changed while uploading a new version; retry",
            details={"expected_version": expected},
        )

    db.add(
        DocumentVersion(
            document_id=doc.id,
            version=next_version,
            storage_key=storage_key,
            file_name=file_name,
            content_type=content_type,
            size_bytes=size_bytes,
            uploaded_by=actor.user_id,
            uploaded_at=now,
        )
    )
    await db.flush()
    await record_activity(
        db,
        actor_id=actor.user_id,
        org_id=doc.organization_id,
        action="uploaded_document_version",
        resource_type="document",
        resource_id=doc.id,
        resource_name=doc.name,
        details={"version": next_version},
    )
    return next_version


async def add_version(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    document_id: UUID,
    *,
    storage_key: str,
    file_name: str | None = None,
    content_type: str | None = None,
    size_bytes: int | None = None,
) -> int:
    async with atomic(db):
        doc = await get_document(db, actor, document_id)
        version = await append_version(
            db,
            actor,
            adapter,
            doc,
            storage_key=storage_key,
            file_name=file_name,
            content_type=content_type,
            size_bytes=size_bytes,
        )
    await db.refresh(doc)
    return version


async def list_versions(db: AsyncSession, actor: Actor, document_id: UUID) -> list[DocumentVersion]:
    doc = await get_document(db, actor, document_id)
    stmt = (
        select(DocumentVersion)
        .where(DocumentVersion.document_id == doc.id)
        .order_by(DocumentVersion.version.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_version_download_url(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    document_id: UUID,
    version: int,
) -> str:
    doc = await get_document(db, actor, document_id)
    stmt = select(DocumentVersion).where(
        DocumentVersion.document_id == doc.id,
        DocumentVersion.version == version,
    )
    entry = (await db.execute(stmt)).scalar_one_or_none()
    if not entry:
        raise NotFoundError("Document version not found")
    url = await call_adapter(
        "download url",
        adapter.generate_download_url,
        entry.storage_key,
        settings.signed_url_expiry_seconds,
        file_name=entry.file_name,
    )
    await record_activity(
        db,
        actor_id=actor.user_id,
        org_id=doc.organization_id,
        action="downloaded_document",
        resource_type="document",
        resource_id=doc.id,
        resource_name=doc.name,
        details={"version": version},
    )
    await db.commit()
    return url

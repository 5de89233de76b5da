from __future__ import annotations

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import ConflictError, NotFoundError, ValidationError
from portal.core.settings import settings
from portal.core.tenant import Actor, ensure_org_access, require_staff
from portal.db.transaction import atomic
from portal.models.document import Document
from portal.models.folder import Folder
from portal.models.organization import Organization
from portal.models.service_type import ServiceType
from portal.models.types import utcnow
from portal.schemas.folders import FolderDTO, FolderTreeNode
from portal.services.activity import record_activity

MAX_NAME_LENGTH = 100


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Folder name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Folder name must be {MAX_NAME_LENGTH} characters or less")
    return cleaned


async def _get_folder(db: AsyncSession, folder_id: UUID) -> Folder:
    folder = await db.get(Folder, folder_id)
    if not folder:
        raise NotFoundError("Folder not found")
    return folder


async def get_folder(db: AsyncSession, actor: Actor, folder_id: UUID) -> Folder:
    folder = await _get_folder(db, folder_id)
    ensure_org_access(actor, folder.organization_id)
    return folder


async def ancestor_chain(db: AsyncSession, folder_id: UUID) -> list[Folder]:
    """Folders from ``folder_id`` up to its root, inclusive.

    Raises ConflictError if the stored parent chain loops.
    """
    chain: list[Folder] = []
    seen: set[UUID] = set()
    current: UUID | None = folder_id
    while current is not None:
        if current in seen:
            raise ConflictError("Folder hierarchy contains a cycle")
        seen.add(current)
        folder = await _get_folder(db, current)
        chain.append(folder)
        current = folder.parent_id
    return chain


async def ensure_acyclic(db: AsyncSession, folder_id: UUID | None, parent_id: UUID | None) -> list[Folder]:
    """Check that placing ``folder_id`` under ``parent_id`` keeps the tree acyclic.

    Returns the parent's ancestor chain (parent first) for depth checks.
    """
    if parent_id is None:
        return []
    if folder_id is not None and folder_id == parent_id:
        raise ValidationError("A folder cannot be its own parent")
    chain = await ancestor_chain(db, parent_id)
    if folder_id is not None and any(f.id == folder_id for f in chain):
        raise ValidationError("A folder cannot be moved into one of its own subfolders")
    return chain


def _ensure_same_scope(parent: Folder, org_id: UUID, service_type_id: UUID | None) -> None:
    """Every ancestor shares the child's organization and, when the child has one, its service."""
    if parent.organization_id != org_id:
        raise ValidationError("Parent folder belongs to a different organization")
    if service_type_id is not None and parent.service_type_id != service_type_id:
        raise ValidationError("Parent folder belongs to a different service")


async def _ensure_service_type(db: AsyncSession, service_type_id: UUID | None) -> None:
    if service_type_id is None:
        return
    service = await db.get(ServiceType, service_type_id)
    if not service:
        raise NotFoundError("Service type not found")
    if not service.is_active:
        raise ValidationError("Service type is not active")


async def _ensure_unique_name(
    db: AsyncSession,
    *,
    org_id: UUID,
    service_type_id: UUID | None,
    parent_id: UUID | None,
    name: str,
    exclude_id: UUID | None = None,
) -> None:
    stmt = select(Folder.id).where(
        Folder.organization_id == org_id,
        func.lower(Folder.name) == name.lower(),
    )
    stmt = stmt.where(
        Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
    )
    stmt = stmt.where(
        Folder.service_type_id.is_(None)
        if service_type_id is None
        else Folder.service_type_id == service_type_id
    )
    if exclude_id is not None:
        stmt = stmt.where(Folder.id != exclude_id)
    if (await db.execute(stmt.limit(1))).first():
        raise ConflictError(f"A folder named '{name}' already exists here")


async def _subtree_height(db: AsyncSession, folder: Folder) -> int:
    """Levels in the subtree rooted at ``folder`` (1 for a leaf)."""
    rows = (
        await db.execute(
            select(Folder.id, Folder.parent_id).where(
                Folder.organization_id == folder.organization_id
            )
        )
    ).all()
    children: dict[UUID, list[UUID]] = defaultdict(list)
    for child_id, parent_id in rows:
        if parent_id is not None:
            children[parent_id].append(child_id)
    height = 0
    level = [folder.id]
    while level:
        height += 1
        level = [child for node in level for child in children.get(node, [])]
    return height


def _ensure_depth(levels: int) -> None:
    if levels > settings.folder_max_depth:
        raise ValidationError(
            f"Folders can be nested at most {settings.folder_max_depth} levels deep"
        )


async def create_folder(
    db: AsyncSession,
    actor: Actor,
    *,
    org_id: UUID,
    name: str,
    parent_id: UUID | None = None,
    service_type_id: UUID | None = None,
    description: str | None = None,
    color: str | None = None,
) -> Folder:
    ensure_org_access(actor, org_id)
    cleaned = _clean_name(name)
    async with atomic(db):
        if not await db.get(Organization, org_id):
            raise NotFoundError("Organization not found")
        if parent_id is not None:
            parent = await _get_folder(db, parent_id)
            if service_type_id is None:
                service_type_id = parent.service_type_id
            _ensure_same_scope(parent, org_id, service_type_id)
        await _ensure_service_type(db, service_type_id)
        chain = await ensure_acyclic(db, None, parent_id)
        _ensure_depth(len(chain) + 1)
        await _ensure_unique_name(
            db, org_id=org_id, service_type_id=service_type_id, parent_id=parent_id, name=cleaned
        )

        folder = Folder(
            organization_id=org_id,
            service_type_id=service_type_id,
            parent_id=parent_id,
            name=cleaned,
            description=description,
            color=color,
            created_by=actor.user_id,
            created_at=utcnow(),
        )
        db.add(folder)
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=org_id,
            action="created_folder",
            resource_type="folder",
            resource_id=folder.id,
            resource_name=folder.name,
            details={"parent_id": parent_id},
        )
    await db.refresh(folder)
    return folder


async def update_folder(
    db: AsyncSession,
    actor: Actor,
    folder_id: UUID,
    *,
    name: str | None = None,
    description: str | None = None,
    color: str | None = None,
) -> Folder:
    async with atomic(db):
        folder = await _get_folder(db, folder_id)
        ensure_org_access(actor, folder.organization_id)
        if name is not None:
            cleaned = _clean_name(name)
            await _ensure_unique_name(
                db,
                org_id=folder.organization_id,
                service_type_id=folder.service_type_id,
                parent_id=folder.parent_id,
                name=cleaned,
                exclude_id=folder.id,
            )
            folder.name = cleaned
        if description is not None:
            folder.description = description
        if color is not None:
            folder.color = color
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=folder.organization_id,
            action="updated_folder",
            resource_type="folder",
            resource_id=folder.id,
            resource_name=folder.name,
        )
    await db.refresh(folder)
    return folder


async def move_folder(
    db: AsyncSession,
    actor: Actor,
    folder_id: UUID,
    new_parent_id: UUID | None,
) -> Folder:
    require_staff(actor)
    async with atomic(db):
        folder = await _get_folder(db, folder_id)
        old_parent_id = folder.parent_id
        if new_parent_id is not None:
            parent = await _get_folder(db, new_parent_id)
            _ensure_same_scope(parent, folder.organization_id, folder.service_type_id)
        chain = await ensure_acyclic(db, folder.id, new_parent_id)
        _ensure_depth(len(chain) + await _subtree_height(db, folder))
        await _ensure_unique_name(
            db,
            org_id=folder.organization_id,
            service_type_id=folder.service_type_id,
            parent_id=new_parent_id,
            name=folder.name,
            exclude_id=folder.id,
        )
        folder.parent_id = new_parent_id
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=folder.organization_id,
            action="moved_folder",
            resource_type="folder",
            resource_id=folder.id,
            resource_name=folder.name,
            details={"from_parent_id": old_parent_id, "to_parent_id": new_parent_id},
        )
    await db.refresh(folder)
    return folder


async def delete_folder(db: AsyncSession, actor: Actor, folder_id: UUID) -> None:
    require_staff(actor)
    async with atomic(db):
        folder = await _get_folder(db, folder_id)
        doc_count = (
            await db.execute(
                select(func.count())
                .select_from(Document)
                .where(Document.folder_id == folder.id, Document.deleted_at.is_(None))
            )
        ).scalar_one()
        if doc_count:
            raise ConflictError("Folder still contains documents")
        child_count = (
            await db.execute(
                select(func.count()).select_from(Folder).where(Folder.parent_id == folder.id)
            )
        ).scalar_one()
        if child_count:
            raise ConflictError("Folder still contains subfolders")
        # Soft-deleted documents keep their row; detach them so the folder row can go.
        deleted_docs = (
            await db.execute(select(Document).where(Document.folder_id == folder.id))
        ).scalars().all()
        for doc in deleted_docs:
            doc.folder_id = None
        await db.flush()
        await record_activity(
            db,
            actor_id=actor.user_id,
            org_id=folder.organization_id,
            action="deleted_folder",
            resource_type="folder",
            resource_id=folder.id,
            resource_name=folder.name,
        )
        await db.delete(folder)


async def get_breadcrumb(db: AsyncSession, actor: Actor, folder_id: UUID) -> list[dict]:
    """Root-to-folder path, recomputed on every call."""
    folder = await get_folder(db, actor, folder_id)
    chain = await ancestor_chain(db, folder.id)
    return [{"id": f.id, "name": f.name} for f in reversed(chain)]


async def folder_document_counts(
    db: AsyncSession, folder_ids: Iterable[UUID]
) -> dict[UUID, int]:
    folder_ids = list(folder_ids)
    if not folder_ids:
        return {}
    stmt = (
        select(Document.folder_id, func.count())
        .where(Document.folder_id.in_(folder_ids), Document.deleted_at.is_(None))
        .group_by(Document.folder_id)
    )
    return {row[0]: row[1] for row in (await db.execute(stmt)).all()}


async def list_children(
    db: AsyncSession,
    actor: Actor,
    *,
    org_id: UUID,
    parent_id: UUID | None = None,
    service_type_id: UUID | None = None,
) -> list[FolderDTO]:
    ensure_org_access(actor, org_id)
    stmt = select(Folder).where(Folder.organization_id == org_id)
    stmt = stmt.where(
        Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
    )
    if service_type_id is not None:
        stmt = stmt.where(Folder.service_type_id == service_type_id)
    folders = sorted((await db.execute(stmt)).scalars().all(), key=lambda f: f.name.lower())
    counts = await folder_document_counts(db, [f.id for f in folders])
    return [
        FolderDTO.model_validate(folder).model_copy(
            update={"document_count": counts.get(folder.id, 0)}
        )
        for folder in folders
    ]


async def get_tree(
    db: AsyncSession,
    actor: Actor,
    *,
    org_id: UUID,
    service_type_id: UUID | None = None,
) -> list[FolderTreeNode]:
    ensure_org_access(actor, org_id)
    stmt = select(Folder).where(Folder.organization_id == org_id)
    if service_type_id is not None:
        stmt = stmt.where(Folder.service_type_id == service_type_id)
    folders = list((await db.execute(stmt)).scalars().all())
    counts = await folder_document_counts(db, [f.id for f in folders])

    nodes = {
        f.id: FolderTreeNode(
            id=f.id,
            name=f.name,
            parent_id=f.parent_id,
            service_type_id=f.service_type_id,
            document_count=counts.get(f.id, 0),
        )
        for f in folders
    }
    roots: list[FolderTreeNode] = []
    for node in nodes.values():
        parent = nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)

    def _sort(items: list[FolderTreeNode]) -> list[FolderTreeNode]:
        items.sort(key=lambda n: n.name.lower())
        for item in items:
            _sort(item.children)
        return items

    return _sort(roots)

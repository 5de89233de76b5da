import pytest
from sqlalchemy import select

from portal.core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from portal.core.settings import settings
from portal.models.document import Document
from portal.models.folder import Folder
from portal.services import documents, folders
from tests.conftest import make_service_type, stage_object


async def _chain(db, staff, org, depth, **kwargs):
    parent_id = None
    created = []
    for level in range(depth):
        folder = await folders.create_folder(
            db, staff, org_id=org.id, name=f"Level {level + 1}", parent_id=parent_id, **kwargs
        )
        created.append(folder)
        parent_id = folder.id
    return created


@pytest.mark.asyncio
async def test_breadcrumb_runs_root_to_leaf(db, org, staff, client_actor) -> None:
    service = await make_service_type(db, code="accounting")
    year = await folders.create_folder(
        db, staff, org_id=org.id, name="FY2024", service_type_id=service.id
    )
    quarter = await folders.create_folder(db, staff, org_id=org.id, name="Q4", parent_id=year.id)
    bank = await folders.create_folder(db, staff, org_id=org.id, name="Bank", parent_id=quarter.id)

    assert quarter.service_type_id == service.id
    assert bank.service_type_id == service.id

    crumbs = await folders.get_breadcrumb(db, client_actor, bank.id)
    assert crumbs == [
        {"id": year.id, "name": "FY2024"},
        {"id": quarter.id, "name": "Q4"},
        {"id": bank.id, "name": "Bank"},
    ]

    # Renaming an ancestor shows up on the next call.
    await folders.update_folder(db, staff, year.id, name="FY 2024")
    crumbs = await folders.get_breadcrumb(db, client_actor, bank.id)
    assert crumbs[0]["name"] == "FY 2024"


@pytest.mark.asyncio
async def test_cross_tenant_parent_is_rejected(db, org, other_org, staff) -> None:
    theirs = await folders.create_folder(db, staff, org_id=other_org.id, name="Theirs")
    with pytest.raises(ValidationError):
        await folders.create_folder(db, staff, org_id=org.id, name="Mine", parent_id=theirs.id)
    assert (
        await db.execute(select(Folder).where(Folder.organization_id == org.id))
    ).scalars().all() == []


@pytest.mark.asyncio
async def test_parent_from_other_service_is_rejected(db, org, staff) -> None:
    tax = await make_service_type(db, code="taxation")
    payroll = await make_service_type(db, code="payroll")
    parent = await folders.create_folder(db, staff, org_id=org.id, name="Tax", service_type_id=tax.id)
    with pytest.raises(ValidationError):
        await folders.create_folder(
            db, staff, org_id=org.id, name="Payslips", parent_id=parent.id, service_type_id=payroll.id
        )


@pytest.mark.asyncio
async def test_inactive_or_unknown_service_type(db, org, staff) -> None:
    retired = await make_service_type(db, code="retired", is_active=False)
    with pytest.raises(ValidationError):
        await folders.create_folder(db, staff, org_id=org.id, name="Old", service_type_id=retired.id)
    with pytest.raises(NotFoundError):
        await folders.create_folder(db, staff, org_id=org.id, name="Old", parent_id=retired.id)


@pytest.mark.asyncio
async def test_sibling_names_are_unique_case_insensitively(db, org, other_org, staff) -> None:
    await folders.create_folder(db, staff, org_id=org.id, name="Receipts")
    with pytest.raises(ConflictError):
        await folders.create_folder(db, staff, org_id=org.id, name="  receipts ")

    # Same name is fine in another organization or under another parent.
    await folders.create_folder(db, staff, org_id=other_org.id, name="Receipts")
    parent = await folders.create_folder(db, staff, org_id=org.id, name="2024")
    await folders.create_folder(db, staff, org_id=org.id, name="Receipts", parent_id=parent.id)


@pytest.mark.asyncio
async def test_scoped_child_needs_parent_in_same_service(db, org, staff) -> None:
    tax = await make_service_type(db, code="taxation")
    general = await folders.create_folder(db, staff, org_id=org.id, name="General")
    general_id = general.id

    with pytest.raises(ValidationError):
        await folders.create_folder(
            db, staff, org_id=org.id, name="Returns", parent_id=general_id, service_type_id=tax.id
        )
    assert (
        await db.execute(select(Folder.name).where(Folder.parent_id == general_id))
    ).scalars().all() == []

    # An unscoped child may still sit under an unscoped parent.
    notes = await folders.create_folder(db, staff, org_id=org.id, name="Notes", parent_id=general_id)
    assert notes.service_type_id is None


@pytest.mark.asyncio
async def test_clients_manage_folders_in_their_own_organization(
    db, org, other_org, staff, client_actor
) -> None:
    mine = await folders.create_folder(db, client_actor, org_id=org.id, name="Receipts")
    assert mine.created_by == client_actor.user_id
    mine_id = mine.id

    renamed = await folders.update_folder(db, client_actor, mine_id, name="Receipts 2024")
    assert renamed.name == "Receipts 2024"

    theirs = await folders.create_folder(db, staff, org_id=other_org.id, name="Private")
    theirs_id = theirs.id
    with pytest.raises(PermissionDeniedError):
        await folders.create_folder(db, client_actor, org_id=other_org.id, name="Sneaky")
    with pytest.raises(PermissionDeniedError):
        await folders.update_folder(db, client_actor, theirs_id, name="Mine now")
    with pytest.raises(PermissionDeniedError):
        await folders.move_folder(db, client_actor, mine_id, None)
    with pytest.raises(PermissionDeniedError):
        await folders.delete_folder(db, client_actor, mine_id)

    names = (
        await db.execute(select(Folder.name).where(Folder.organization_id == other_org.id))
    ).scalars().all()
    assert names == ["Private"]


@pytest.mark.asyncio
async def test_move_into_own_subtree_is_rejected(db, org, staff) -> None:
    top, middle, leaf = await _chain(db, staff, org, 3)
    top_id, leaf_id = top.id, leaf.id

    with pytest.raises(ValidationError):
        await folders.move_folder(db, staff, top_id, leaf_id)
    with pytest.raises(ValidationError):
        await folders.move_folder(db, staff, top_id, top_id)

    await db.refresh(top)
    assert top.parent_id is None


@pytest.mark.asyncio
async def test_move_to_root_and_back(db, org, staff, client_actor) -> None:
    top, middle, leaf = await _chain(db, staff, org, 3)
    other = await folders.create_folder(db, staff, org_id=org.id, name="Archive")

    moved = await folders.move_folder(db, staff, middle.id, other.id)
    assert moved.parent_id == other.id
    crumbs = await folders.get_breadcrumb(db, client_actor, leaf.id)
    assert [c["name"] for c in crumbs] == ["Archive", "Level 2", "Level 3"]

    moved = await folders.move_folder(db, staff, middle.id, None)
    assert moved.parent_id is None


@pytest.mark.asyncio
async def test_depth_limit(db, org, staff, monkeypatch) -> None:
    monkeypatch.setattr(settings, "folder_max_depth", 3)
    top, middle, leaf = await _chain(db, staff, org, 3)
    middle_id = middle.id

    with pytest.raises(ValidationError):
        await folders.create_folder(db, staff, org_id=org.id, name="Too deep", parent_id=leaf.id)

    # Moving a two-level subtree under a two-level chain would need four levels.
    other_top = await folders.create_folder(db, staff, org_id=org.id, name="Other")
    other_child = await folders.create_folder(
        db, staff, org_id=org.id, name="Child", parent_id=other_top.id
    )
    with pytest.raises(ValidationError):
        await folders.move_folder(db, staff, middle_id, other_child.id)


@pytest.mark.asyncio
async def test_cycle_in_stored_chain_is_detected(db, org, staff) -> None:
    first = await folders.create_folder(db, staff, org_id=org.id, name="First")
    second = await folders.create_folder(db, staff, org_id=org.id, name="Second", parent_id=first.id)
    # Corrupt the hierarchy directly to simulate bad data.
    first.parent_id = second.id
    await db.commit()

    with pytest.raises(ConflictError):
        await folders.ancestor_chain(db, second.id)


@pytest.mark.asyncio
async def test_delete_folder_checks_contents(db, storage, org, staff, client_actor) -> None:
    parent = await folders.create_folder(db, staff, org_id=org.id, name="Parent")
    child = await folders.create_folder(db, staff, org_id=org.id, name="Child", parent_id=parent.id)
    parent_id, child_id = parent.id, child.id

    with pytest.raises(ConflictError):
        await folders.delete_folder(db, staff, parent_id)

    key = stage_object(storage, org.id)
    doc = await documents.create_document(
        db,
        client_actor,
        storage,
        org_id=org.id,
        name="statement.pdf",
        content_type="application/pdf",
        size_bytes=100,
        storage_key=key,
        category="other",
        folder_id=child_id,
    )
    doc_id = doc.id
    with pytest.raises(ConflictError):
        await folders.delete_folder(db, staff, child_id)

    # Soft-deleted documents do not block deletion; they are detached instead.
    await documents.delete_document(db, staff, storage, doc_id)
    await folders.delete_folder(db, staff, child_id)
    await folders.delete_folder(db, staff, parent_id)

    assert (await db.execute(select(Folder))).scalars().all() == []
    detached = await db.get(Document, doc_id)
    await db.refresh(detached)
    assert detached.folder_id is None


@pytest.mark.asyncio
async def test_children_and_tree_with_document_counts(db, storage, org, staff, client_actor) -> None:
    beta = await folders.create_folder(db, staff, org_id=org.id, name="beta")
    alpha = await folders.create_folder(db, staff, org_id=org.id, name="Alpha")
    nested = await folders.create_folder(db, staff, org_id=org.id, name="Nested", parent_id=alpha.id)

    for _ in range(2):
        await documents.create_document(
            db,
            client_actor,
            storage,
            org_id=org.id,
            name="file.pdf",
            content_type="application/pdf",
            size_bytes=100,
            storage_key=stage_object(storage, org.id),
            category="other",
            folder_id=alpha.id,
        )

    children = await folders.list_children(db, client_actor, org_id=org.id)
    assert [(c.name, c.document_count) for c in children] == [("Alpha", 2), ("beta", 0)]

    tree = await folders.get_tree(db, client_actor, org_id=org.id)
    assert [n.id for n in tree] == [alpha.id, beta.id]
    assert [n.id for n in tree[0].children] == [nested.id]
    assert tree[0].document_count == 2


@pytest.mark.asyncio
async def test_client_cannot_browse_other_tenant(db, org, other_org, staff, client_actor) -> None:
    folder = await folders.create_folder(db, staff, org_id=other_org.id, name="Private")
    folder_id = folder.id
    with pytest.raises(PermissionDeniedError):
        await folders.get_breadcrumb(db, client_actor, folder_id)
    with pytest.raises(PermissionDeniedError):
        await folders.list_children(db, client_actor, org_id=other_org.id)
    with pytest.raises(PermissionDeniedError):
        await folders.get_tree(db, client_actor, org_id=other_org.id)

import logging
from datetime import datetime, timezone

import pytest
from sqlalchemy import select, update

from portal.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from portal.models.activity_log import ActivityLog
from portal.models.document import Document, DocumentVersion
from portal.schemas.common import Disposition, DocumentCategory, DocumentSortField, SortOrder
from portal.schemas.documents import DocumentFilters
from portal.services import documents, folders
from tests.conftest import make_service_type, stage_object


async def _create(db, actor, storage, org, name="statement.pdf", size=1024, **fields):
    key = stage_object(storage, org.id, name)
    return await documents.create_document(
        db,
        actor,
        storage,
        org_id=org.id,
        name=name,
        content_type=fields.pop("content_type", "application/pdf"),
        size_bytes=size,
        storage_key=key,
        category=fields.pop("category", "financial_statement"),
        **fields,
    )


async def _actions(db, resource_id) -> list[str]:
    rows = await db.execute(
        select(ActivityLog.action)
        .where(ActivityLog.resource_id == str(resource_id))
        .order_by(ActivityLog.id)
    )
    return list(rows.scalars().all())


@pytest.mark.asyncio
async def test_create_document_registers_version_one(db, storage, org, client_actor) -> None:
    doc = await _create(db, client_actor, storage, org, tags=[" q4 ", "", "bank"])

    assert doc.current_version == 1
    assert doc.storage_provider == "fake"
    assert doc.storage_bucket == "test-bucket"
    assert doc.uploaded_by == client_actor.user_id
    assert doc.tags == ["q4", "bank"]
    assert doc.uploaded_at.tzinfo is not None

    versions = (
        await db.execute(select(DocumentVersion).where(DocumentVersion.document_id == doc.id))
    ).scalars().all()
    assert [v.version for v in versions] == [1]
    assert versions[0].storage_key == doc.storage_key
    assert "finalize_upload" in storage.operations()
    assert await _actions(db, doc.id) == ["uploaded_document"]


@pytest.mark.asyncio
async def test_create_document_requires_uploaded_object(db, storage, org, client_actor) -> None:
    with pytest.raises(NotFoundError):
        await documents.create_document(
            db,
            client_actor,
            storage,
            org_id=org.id,
            name="ghost.pdf",
            content_type="application/pdf",
            size_bytes=10,
            storage_key=f"documents/{org.id}/never-uploaded.pdf",
            category="other",
        )
    assert (await db.execute(select(Document))).scalars().all() == []


@pytest.mark.asyncio
async def test_create_document_rejects_foreign_storage_key(
    db, storage, org, other_org, client_actor
) -> None:
    key = stage_object(storage, other_org.id, "theirs.pdf")
    with pytest.raises(ValidationError):
        await documents.create_document(
            db,
            client_actor,
            storage,
            org_id=org.id,
            name="theirs.pdf",
            content_type="application/pdf",
            size_bytes=10,
            storage_key=key,
            category="other",
        )


@pytest.mark.asyncio
async def test_create_document_rejects_unknown_category(db, storage, org, client_actor) -> None:
    with pytest.raises(ValidationError):
        await _create(db, client_actor, storage, org, category="memes")
    assert "finalize_upload" not in storage.operations()


@pytest.mark.asyncio
async def test_document_inherits_folder_service_type(db, storage, org, staff, client_actor) -> None:
    service = await make_service_type(db, code="taxation")
    folder = await folders.create_folder(
        db, staff, org_id=org.id, name="FY2024", service_type_id=service.id
    )
    doc = await _create(db, client_actor, storage, org, folder_id=folder.id)
    assert doc.folder_id == folder.id
    assert doc.service_type_id == service.id


@pytest.mark.asyncio
async def test_document_rejects_folder_from_other_org(
    db, storage, org, other_org, staff, client_actor
) -> None:
    folder = await folders.create_folder(db, staff, org_id=other_org.id, name="Theirs")
    with pytest.raises(ValidationError):
        await _create(db, client_actor, storage, org, folder_id=folder.id)


@pytest.mark.asyncio
async def test_client_cannot_read_other_tenant_document(
    db, storage, org, client_actor, other_client_actor
) -> None:
    doc_id = (await _create(db, client_actor, storage, org)).id
    with pytest.raises(PermissionDeniedError):
        await documents.get_document(db, other_client_actor, doc_id)
    with pytest.raises(PermissionDeniedError):
        await documents.get_download_url(db, other_client_actor, storage, doc_id)
    assert "generate_download_url" not in storage.operations()


@pytest.mark.asyncio
async def test_list_documents_is_tenant_scoped(
    db, storage, org, other_org, staff, client_actor, other_client_actor
) -> None:
    mine_id = (await _create(db, client_actor, storage, org, name="mine.pdf")).id
    theirs_id = (await _create(db, other_client_actor, storage, other_org, name="theirs.pdf")).id

    visible = await documents.list_documents(db, client_actor)
    assert [d.id for d in visible] == [mine_id]

    with pytest.raises(PermissionDeniedError):
        await documents.list_documents(db, client_actor, DocumentFilters(org_id=other_org.id))

    all_docs = await documents.list_documents(db, staff)
    assert {d.id for d in all_docs} == {mine_id, theirs_id}
    assert await documents.count_documents(db, client_actor) == 1
    assert await documents.count_documents(db, staff) == 2


@pytest.mark.asyncio
async def test_list_documents_filters_and_search(db, storage, org, client_actor) -> None:
    await _create(db, client_actor, storage, org, name="2024 Tax Return.pdf", category="tax_return")
    invoice = await _create(
        db,
        client_actor,
        storage,
        org,
        name="Invoice 100%.pdf",
        category="invoice",
        description="Office supplies",
    )

    by_category = await documents.list_documents(
        db, client_actor, DocumentFilters(category=DocumentCategory.INVOICE)
    )
    assert [d.id for d in by_category] == [invoice.id]

    by_description = await documents.list_documents(
        db, client_actor, DocumentFilters(search="SUPPLIES")
    )
    assert [d.id for d in by_description] == [invoice.id]

    # LIKE wildcards in the search term are matched literally.
    literal = await documents.list_documents(db, client_actor, DocumentFilters(search="100%"))
    assert [d.id for d in literal] == [invoice.id]
    assert await documents.list_documents(db, client_actor, DocumentFilters(search="1_0")) == []


@pytest.mark.asyncio
async def test_list_documents_sort_is_stable(db, storage, org, client_actor) -> None:
    first = await _create(db, client_actor, storage, org, name="b.pdf", size=500)
    second = await _create(db, client_actor, storage, org, name="a.pdf", size=500)
    third = await _create(db, client_actor, storage, org, name="C.pdf", size=100)

    by_size = await documents.list_documents(
        db, client_actor, DocumentFilters(sort_by=DocumentSortField.SIZE, sort_order=SortOrder.ASC)
    )
    assert [d.id for d in by_size] == [third.id, first.id, second.id]

    by_name = await documents.list_documents(
        db, client_actor, DocumentFilters(sort_by=DocumentSortField.NAME, sort_order=SortOrder.ASC)
    )
    assert [d.name for d in by_name] == ["a.pdf", "b.pdf", "C.pdf"]

    newest_first = await documents.list_documents(db, client_actor)
    assert [d.id for d in newest_first] == [third.id, second.id, first.id]


@pytest.mark.asyncio
async def test_list_documents_breaks_upload_time_ties_by_id(db, storage, org, client_actor) -> None:
    ids = [(await _create(db, client_actor, storage, org, name=f"{n}.pdf")).id for n in "xyz"]
    await db.execute(
        update(Document)
        .where(Document.organization_id == org.id)
        .values(uploaded_at=datetime(2025, 3, 31, 9, 0, tzinfo=timezone.utc))
    )
    await db.commit()

    for order in (SortOrder.DESC, SortOrder.ASC):
        listed = await documents.list_documents(db, client_actor, DocumentFilters(sort_order=order))
        assert [d.id for d in listed] == sorted(ids)


@pytest.mark.asyncio
async def test_download_url_logs_access(db, storage, org, client_actor) -> None:
    doc = await _create(db, client_actor, storage, org)

    url = await documents.get_download_url(db, client_actor, storage, doc.id)
    assert "disposition=attachment" in url
    preview = await documents.get_download_url(
        db, client_actor, storage, doc.id, disposition=Disposition.PREVIEW, expires_in=60
    )
    assert "disposition=inline" in preview
    assert "expires_in=60" in preview

    assert await _actions(db, doc.id) == [
        "uploaded_document",
        "downloaded_document",
        "previewed_document",
    ]


@pytest.mark.asyncio
async def test_download_urls_are_not_cached(db, storage, org, client_actor) -> None:
    doc = await _create(db, client_actor, storage, org)
    await documents.get_download_url(db, client_actor, storage, doc.id)
    await documents.get_download_url(db, client_actor, storage, doc.id)
    assert storage.operations().count("generate_download_url") == 2


@pytest.mark.asyncio
async def test_delete_document_soft_deletes_and_removes_blobs(
    db, storage, org, staff, client_actor
) -> None:
    doc = await _create(db, client_actor, storage, org)
    key = doc.storage_key

    await documents.delete_document(db, staff, storage, doc.id)

    await db.refresh(doc)
    assert doc.deleted_at is not None
    assert key not in storage.objects
    with pytest.raises(NotFoundError):
        await documents.get_document(db, staff, doc.id)
    assert await documents.list_documents(db, staff) == []
    assert "deleted_document" in await _actions(db, doc.id)


@pytest.mark.asyncio
async def test_delete_document_survives_blob_cleanup_failure(
    db, storage, org, staff, client_actor, caplog
) -> None:
    doc = await _create(db, client_actor, storage, org)
    storage.fail_deletes = True

    with caplog.at_level(logging.WARNING, logger="portal.services.documents"):
        await documents.delete_document(db, staff, storage, doc.id)

    await db.refresh(doc)
    assert doc.deleted_at is not None
    assert any("cleanup failed" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_upload_document_pushes_bytes_then_registers(db, storage, org, client_actor) -> None:
    doc = await documents.upload_document(
        db,
        client_actor,
        storage,
        org_id=org.id,
        file_name="receipt.png",
        content_type="image/png",
        data=b"\x89PNG\r\n\x1a\n" + b"\x00" * 32,
        category="receipt",
    )
    assert doc.name == "receipt.png"
    assert doc.size_bytes == 40
    assert storage.objects[doc.storage_key].startswith(b"\x89PNG")
    assert storage.operations()[:2] == ["put_object", "finalize_upload"]

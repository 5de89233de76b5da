"""Cancelling a request mid-upload must not leave partial records behind."""

import asyncio

import pytest
from sqlalchemy import select

from portal.models.document import Document, DocumentVersion
from portal.services import document_requests, documents
from tests.conftest import stage_object


async def _wait_for(event, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not event.is_set():
        if loop.time() > deadline:
            raise AssertionError("adapter call never started")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_cancel_during_server_upload_creates_nothing(
    db, storage, org, client_actor
) -> None:
    storage.block_on = "put_object"
    task = asyncio.create_task(
        documents.upload_document(
            db,
            client_actor,
            storage,
            org_id=org.id,
            file_name="statement.pdf",
            content_type="application/pdf",
            data=b"%PDF-1.7 body",
            category="financial_statement",
        )
    )
    await _wait_for(storage.entered)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    storage.release.set()

    assert (await db.execute(select(Document))).scalars().all() == []
    assert "finalize_upload" not in storage.operations()


@pytest.mark.asyncio
async def test_cancel_during_finalize_rolls_back_request_upload(
    db, storage, org, staff, client_user, client_actor
) -> None:
    req = await document_requests.create_request(
        db,
        staff,
        org_id=org.id,
        client_id=client_user.id,
        title="Q4 bank statement",
        category="financial_statement",
    )
    key = stage_object(storage, org.id, "q4.pdf")
    storage.block_on = "finalize_upload"

    task = asyncio.create_task(
        document_requests.submit_upload(
            db,
            client_actor,
            storage,
            req.id,
            storage_key=key,
            file_name="q4.pdf",
            content_type="application/pdf",
            size_bytes=2048,
        )
    )
    await _wait_for(storage.entered)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    storage.release.set()

    await db.refresh(req)
    assert req.status == "pending"
    assert req.document_id is None
    assert (await db.execute(select(Document))).scalars().all() == []
    assert (await db.execute(select(DocumentVersion))).scalars().all() == []

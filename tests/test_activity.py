import logging
from contextlib import asynccontextmanager
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from portal.core.errors import PermissionDeniedError, ValidationError
from portal.models.activity_log import ActivityLog
from portal.models.folder import Folder
from portal.schemas.activity import ActivityFilters
from portal.services import activity, folders


async def _log(db, org_id, action, resource_id=None, actor_id=None):
    await activity.record_activity(
        db,
        actor_id=actor_id or uuid4(),
        org_id=org_id,
        action=action,
        resource_type="document",
        resource_id=resource_id or uuid4(),
        resource_name=f"{action}.pdf",
        details={"when": action},
    )
    await db.commit()


@pytest.mark.asyncio
async def test_list_activity_newest_first_with_cursor(db, org, staff) -> None:
    for index in range(5):
        await _log(db, org.id, f"action_{index}")

    first = await activity.list_activity(db, staff, limit=2)
    assert [e.action for e in first.items] == ["action_4", "action_3"]
    assert first.has_more is True
    assert first.next_cursor

    second = await activity.list_activity(db, staff, cursor=first.next_cursor, limit=2)
    assert [e.action for e in second.items] == ["action_2", "action_1"]

    last = await activity.list_activity(db, staff, cursor=second.next_cursor, limit=2)
    assert [e.action for e in last.items] == ["action_0"]
    assert last.has_more is False
    assert last.next_cursor is None


@pytest.mark.asyncio
async def test_list_activity_filters_and_scoping(
    db, org, other_org, staff, client_actor
) -> None:
    target = uuid4()
    await _log(db, org.id, "downloaded_document", resource_id=target)
    await _log(db, org.id, "previewed_document", resource_id=target)
    await _log(db, other_org.id, "downloaded_document")

    mine = await activity.list_activity(db, client_actor)
    assert {e.organization_id for e in mine.items} == {org.id}
    assert len(mine.items) == 2

    downloads = await activity.list_activity(
        db, staff, ActivityFilters(action="downloaded_document")
    )
    assert len(downloads.items) == 2

    by_resource = await activity.list_activity(
        db, staff, ActivityFilters(resource_id=str(target), org_id=org.id)
    )
    assert [e.action for e in by_resource.items] == ["previewed_document", "downloaded_document"]
    assert by_resource.items[0].details == {"when": "previewed_document"}

    with pytest.raises(PermissionDeniedError):
        await activity.list_activity(db, client_actor, ActivityFilters(org_id=other_org.id))


@pytest.mark.asyncio
async def test_list_activity_rejects_bad_paging(db, staff) -> None:
    with pytest.raises(ValidationError):
        await activity.list_activity(db, staff, limit=0)
    with pytest.raises(ValidationError):
        await activity.list_activity(db, staff, cursor="not-a-cursor")


@pytest.mark.asyncio
async def test_limit_is_capped(db, org, staff, monkeypatch) -> None:
    monkeypatch.setattr(activity.settings, "activity_page_size_max", 3)
    for index in range(5):
        await _log(db, org.id, f"action_{index}")
    page = await activity.list_activity(db, staff, limit=50)
    assert len(page.items) == 3
    assert page.has_more is True


@pytest.mark.asyncio
async def test_log_failure_never_fails_the_operation(db, org, staff, monkeypatch, caplog) -> None:
    @asynccontextmanager
    async def broken_savepoint():
        raise SQLAlchemyError("activity table unavailable")
        yield

    monkeypatch.setattr(db, "begin_nested", broken_savepoint)

    with caplog.at_level(logging.WARNING, logger="portal.services.activity"):
        folder = await folders.create_folder(db, staff, org_id=org.id, name="Still created")

    monkeypatch.undo()
    assert (await db.execute(select(Folder.id))).scalars().all() == [folder.id]
    assert (await db.execute(select(ActivityLog))).scalars().all() == []
    assert any("Failed to record activity" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_pending_changes_that_fail_to_flush_are_not_swallowed(
    db, org, monkeypatch, caplog
) -> None:
    savepoints = []

    async def failing_flush(*args, **kwargs):
        raise SQLAlchemyError("constraint violated by the caller's row")

    def recording_savepoint():
        savepoints.append(True)
        raise AssertionError("savepoint opened before pending changes were flushed")

    monkeypatch.setattr(db, "flush", failing_flush)
    monkeypatch.setattr(db, "begin_nested", recording_savepoint)

    with caplog.at_level(logging.WARNING, logger="portal.services.activity"):
        with pytest.raises(SQLAlchemyError, match="caller's row"):
            await activity.record_activity(
                db,
                actor_id=uuid4(),
                org_id=org.id,
                action="updated_folder",
                resource_type="folder",
                resource_id=uuid4(),
            )

    assert savepoints == []
    assert not any("Failed to record activity" in r.getMessage() for r in caplog.records)

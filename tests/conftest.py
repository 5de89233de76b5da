"""Global test fixtures and shared test infrastructure.

Provides:
- Environment variable defaults (must be set before any portal import)
- A per-test SQLite database driven through aiosqlite with working savepoints
- FakeStorageAdapter recording every blob-store call
- Model factories (make_org, make_user, make_service_type) and actor helpers
"""

from __future__ import annotations

import os
import tempfile

# Environment defaults must be set before importing portal, which builds
# Settings and the engine on import.
_TMP_ROOT = tempfile.mkdtemp(prefix="portal-tests-")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_ROOT}/import.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("STORAGE_PROVIDER", "local")
os.environ.setdefault("LOCAL_UPLOAD_DIR", f"{_TMP_ROOT}/uploads")
os.environ.setdefault("SEED_SERVICE_TYPES", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

import threading
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portal.core.permissions import Role
from portal.core.tenant import Actor
from portal.db.base import Base
from portal import models  # noqa: F401
from portal.models.organization import Organization
from portal.models.service_type import ServiceType
from portal.models.user import User
from portal.services.storage.adapter import StorageAdapter
from portal.services.uploads import generate_storage_key


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


def _enable_sqlite_savepoints(engine) -> None:
    """pysqlite's own transaction handling breaks SAVEPOINT; take it over."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def engine(tmp_path):
    # NullPool: every session opens its own connection on the running loop.
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/portal.db", poolclass=pool.NullPool
    )
    _enable_sqlite_savepoints(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# In-memory storage adapter that records every call
# ---------------------------------------------------------------------------


class FakeStorageAdapter(StorageAdapter):
    provider = "fake"
    bucket = "test-bucket"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_deletes = False
        # Set ``block_on`` to an operation name to park that call until released.
        self.block_on: str | None = None
        self.entered = threading.Event()
        self.release = threading.Event()

    def _record(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if self.block_on == operation:
            self.entered.set()
            self.release.wait(timeout=10)

    def generate_upload_url(self, object_key, content_type, size_bytes):
        self._record("generate_upload_url", object_key)
        return {
            "upload_url": f"https://fake-storage/upload/{object_key}",
            "method": "PUT",
            "headers": {"Content-Type": content_type},
            "expires_in": 900,
        }

    def generate_download_url(self, object_key, expires_in=3600, *, file_name=None, inline=False):
        self._record("generate_download_url", object_key)
        mode = "inline" if inline else "attachment"
        return f"https://fake-storage/{object_key}?expires_in={expires_in}&disposition={mode}"

    def put_object(self, object_key, content, content_type):
        self._record("put_object", object_key)
        self.objects[object_key] = content

    def delete_object(self, object_key):
        self._record("delete_object", object_key)
        if self.fail_deletes:
            raise RuntimeError("bucket unavailable")
        self.objects.pop(object_key, None)

    def object_exists(self, object_key):
        self._record("object_exists", object_key)
        return object_key in self.objects

    def check(self):
        self._record("check", "")

    def finalize_upload(self, object_key):
        self._record("finalize_upload", object_key)
        return super().finalize_upload(object_key)

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]


@pytest.fixture
def storage() -> FakeStorageAdapter:
    adapter = FakeStorageAdapter()
    yield adapter
    adapter.release.set()


def stage_object(
    adapter: FakeStorageAdapter,
    org_id: UUID,
    file_name: str = "statement.pdf",
    content: bytes = b"%PDF-1.7 test",
) -> str:
    """Simulate a client finishing a direct upload; returns the storage key."""
    key = generate_storage_key(org_id, file_name)
    adapter.objects[key] = content
    return key


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


async def _persist(db: AsyncSession, instance):
    """Commit a fixture row and detach it.

    A failing service call rolls the session back, which expires every attached
    instance; detached fixture rows keep their loaded ids readable afterwards.
    """
    db.add(instance)
    await db.commit()
    await db.refresh(instance)
    db.expunge(instance)
    # End the read transaction the refresh opened.
    await db.commit()
    return instance


async def make_org(db: AsyncSession, *, name: str = "Acme Ltd", **overrides: Any) -> Organization:
    defaults: dict[str, Any] = dict(
        id=uuid4(),
        name=name,
        email=f"{uuid4().hex[:8]}@acme.example",
    )
    defaults.update(overrides)
    return await _persist(db, Organization(**defaults))


async def make_user(
    db: AsyncSession,
    *,
    role: Role = Role.CLIENT,
    org: Organization | None = None,
    **overrides: Any,
) -> User:
    defaults: dict[str, Any] = dict(
        id=uuid4(),
        email=f"{uuid4().hex[:8]}@example.com",
        name="Test User",
        role=role.value,
        organization_id=org.id if org else None,
    )
    defaults.update(overrides)
    return await _persist(db, User(**defaults))


async def make_service_type(
    db: AsyncSession, *, code: str = "taxation", **overrides: Any
) -> ServiceType:
    defaults: dict[str, Any] = dict(
        id=uuid4(),
        code=code,
        name=code.title(),
        icon="folder",
        color="gray",
        is_active=True,
        display_order=1,
    )
    defaults.update(overrides)
    return await _persist(db, ServiceType(**defaults))


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=Role(user.role), org_id=user.organization_id)


# ---------------------------------------------------------------------------
# Shared scenario fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def org(db) -> Organization:
    return await make_org(db, name="Acme Ltd")


@pytest_asyncio.fixture
async def other_org(db) -> Organization:
    return await make_org(db, name="Globex Corp")


@pytest_asyncio.fixture
async def staff_user(db) -> User:
    return await make_user(db, role=Role.STAFF, name="Sam Staff")


@pytest_asyncio.fixture
async def admin_user(db) -> User:
    return await make_user(db, role=Role.ADMIN, name="Ada Admin")


@pytest_asyncio.fixture
async def client_user(db, org) -> User:
    return await make_user(db, role=Role.CLIENT, org=org, name="Carla Client")


@pytest_asyncio.fixture
async def other_client(db, other_org) -> User:
    return await make_user(db, role=Role.CLIENT, org=other_org, name="Otto Other")


@pytest.fixture
def staff(staff_user) -> Actor:
    return actor_for(staff_user)


@pytest.fixture
def admin(admin_user) -> Actor:
    return actor_for(admin_user)


@pytest.fixture
def client_actor(client_user) -> Actor:
    return actor_for(client_user)


@pytest.fixture
def other_client_actor(other_client) -> Actor:
    return actor_for(other_client)

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portal.core.settings import settings
from portal.db.url import normalize_database_url

DATABASE_URL = normalize_database_url(settings.database_url)

engine = create_async_engine(
    DATABASE_URL,
    pool_pre_ping=not DATABASE_URL.startswith("sqlite"),
    echo=False,
)
# Services commit explicitly through ``atomic``; loaded rows stay readable afterwards.
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session

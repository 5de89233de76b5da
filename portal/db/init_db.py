import asyncio
import logging

from portal.core.settings import settings
from portal.db.session import AsyncSessionLocal
from portal.services.service_types import seed_default_service_types

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Seed reference data that every deployment needs."""
    if not settings.seed_service_types:
        return
    async with AsyncSessionLocal() as session:
        created = await seed_default_service_types(session)
        if not created:
            logger.info("Default service types already present")


if __name__ == "__main__":
    asyncio.run(init_db())

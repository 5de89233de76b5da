from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a service operation as one unit: commit on success, roll back on any error.

    Cancellation counts as an error, so a cancelled operation leaves nothing behind.
    """
    try:
        yield db
    except BaseException:
        await db.rollback()
        logger.debug("Transaction rolled back")
        raise
    await db.commit()

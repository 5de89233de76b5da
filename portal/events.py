import logging

from fastapi import FastAPI

from portal.core.settings import settings
from portal.db.init_db import init_db
from portal.db.session import engine
from portal.services.storage.service import get_storage_adapter
from portal.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        # Misconfigured storage (e.g. gcs without a bucket) should stop the process here.
        adapter = get_storage_adapter()
        logger.info(
            "Starting document service storage=%s bucket=%s max_upload_mb=%s",
            adapter.provider,
            adapter.bucket,
            settings.max_upload_size_mb,
        )
        await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Shutting down document service")
        if get_redis_client.cache_info().currsize:
            await get_redis_client().aclose()
            get_redis_client.cache_clear()
        await engine.dispose()

import asyncio
import logging
from typing import Any, Callable, TypeVar

from portal.core.errors import NotFoundError, PortalError, UpstreamStorageError
from portal.core.settings import settings
from portal.services.storage.adapter import GCSStorageAdapter, LocalFileSystemAdapter, StorageAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_storage_adapter(*, bucket_override: str | None = None) -> StorageAdapter:
    if settings.storage_provider == "gcs":
        bucket = bucket_override or settings.gcs_bucket
        if not bucket:
            raise ValueError("GCS bucket is not configured")
        return GCSStorageAdapter(
            bucket=bucket,
            signed_url_expiry_seconds=settings.signed_url_expiry_seconds,
        )

    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url=settings.public_base_url,
        signing_key=settings.secret_key,
    )


async def call_adapter(operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking adapter call in a worker thread.

    Missing objects surface as NotFoundError and other adapter failures as
    UpstreamStorageError. Cancellation of the awaiting task propagates untouched.
    """
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except PortalError:
        raise
    except FileNotFoundError as exc:
        raise NotFoundError("Stored object not found") from exc
    except Exception as exc:
        logger.warning("Storage %s failed: %s", operation, exc)
        raise UpstreamStorageError(f"Storage {operation} failed") from exc

from __future__ import annotations

import re
import secrets
import time
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from portal.core.errors import NotFoundError, ValidationError
from portal.core.settings import settings
from portal.core.tenant import Actor, ensure_org_access
from portal.models.organization import Organization
from portal.services.storage.adapter import StorageAdapter
from portal.services.storage.service import call_adapter


ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "text/plain",
}

MAX_FILE_NAME_LENGTH = 255

# Magic byte signatures used to cross-check server-side uploads against the
# declared content type.
_MAGIC_SIGNATURES: dict[str, list[bytes]] = {
    "application/pdf": [b"%PDF"],
    "image/png": [b"\x89PNG\r\n\x1a\n"],
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/gif": [b"GIF87a", b"GIF89a"],
    "image/webp": [b"RIFF"],
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": [
        b"PK\x03\x04",
        b"PK\x05\x06",
    ],
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": [
        b"PK\x03\x04",
        b"PK\x05\x06",
    ],
}

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def normalize_content_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def validate_file_name(file_name: str | None) -> str:
    name = (file_name or "").strip()
    if not name:
        raise ValidationError("File name is required")
    if len(name) > MAX_FILE_NAME_LENGTH:
        raise ValidationError(f"File name must be {MAX_FILE_NAME_LENGTH} characters or less")
    if ".." in name or "/" in name or "\\" in name:
        raise ValidationError("Invalid file name")
    return name


def validate_content_policy(content_type: str | None, size_bytes: int | None) -> str:
    normalized = normalize_content_type(content_type)
    if normalized not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            "File type not allowed. Allowed: PDF, Word, Excel, CSV, images, plain text",
            details={"content_type": normalized},
        )
    if size_bytes is None or size_bytes <= 0:
        raise ValidationError("File is empty")
    if size_bytes > settings.max_upload_size_bytes:
        raise ValidationError(
            f"File exceeds maximum allowed size of {settings.max_upload_size_mb} MB",
            details={"size_bytes": size_bytes, "max_size_bytes": settings.max_upload_size_bytes},
        )
    return normalized


def validate_upload(file_name: str | None, content_type: str | None, size_bytes: int | None) -> str:
    """Apply the upload policy; returns the normalized content type.

    Runs before any storage adapter call so rejected files never reach the
    blob store.
    """
    validate_file_name(file_name)
    return validate_content_policy(content_type, size_bytes)


def validate_content(content_type: str, header_bytes: bytes) -> None:
    signatures = _MAGIC_SIGNATURES.get(content_type)
    if signatures is None:
        return
    if not any(header_bytes.startswith(sig) for sig in signatures):
        raise ValidationError(f"File content does not match the declared type '{content_type}'")


def sanitize_file_name(file_name: str) -> str:
    return _UNSAFE_CHARS.sub("_", file_name)


def org_documents_prefix(org_id: UUID | str) -> str:
    return f"documents/{org_id}/"


def generate_storage_key(org_id: UUID | str, file_name: str) -> str:
    timestamp = int(time.time() * 1000)
    token = secrets.token_hex(4)
    return f"{org_documents_prefix(org_id)}{timestamp}-{token}-{sanitize_file_name(file_name)}"


def ensure_org_scoped_key(org_id: UUID | str, key: str) -> None:
    if not key or not key.startswith(org_documents_prefix(org_id)):
        raise ValidationError("Storage key does not belong to this organization")
    if ".." in key.split("/") or "\\" in key:
        raise ValidationError("Invalid storage key")


async def _require_org(db: AsyncSession, org_id: UUID) -> Organization:
    org = await db.get(Organization, org_id)
    if not org:
        raise NotFoundError("Organization not found")
    return org


async def request_upload_target(
    db: AsyncSession,
    actor: Actor,
    adapter: StorageAdapter,
    *,
    org_id: UUID,
    file_name: str,
    content_type: str,
    size_bytes: int,
) -> dict:
    normalized = validate_upload(file_name, content_type, size_bytes)
    ensure_org_access(actor, org_id)
    await _require_org(db, org_id)
    key = generate_storage_key(org_id, file_name)
    target = await call_adapter(
        "upload target", adapter.generate_upload_url, key, normalized, size_bytes
    )
    return {
        "upload_url": target["upload_url"],
        "method": target.get("method", "PUT"),
        "required_headers": target.get("headers", {}),
        "expires_in": target.get("expires_in"),
        "storage_provider": adapter.provider,
        "storage_bucket": adapter.bucket,
        "storage_key": key,
        "file_name": file_name.strip(),
    }


async def store_upload(
    adapter: StorageAdapter,
    *,
    org_id: UUID,
    file_name: str,
    content_type: str,
    data: bytes,
) -> str:
    """Validate and write bytes through the adapter; returns the storage key."""
    normalized = validate_upload(file_name, content_type, len(data))
    validate_content(normalized, data[:16])
    key = generate_storage_key(org_id, file_name)
    await call_adapter("upload", adapter.put_object, key, data, normalized)
    return key

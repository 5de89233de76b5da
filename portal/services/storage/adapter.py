from abc import ABC, abstractmethod
from typing import Any, Dict
from pathlib import Path, PurePosixPath
from datetime import timedelta
import hashlib
import hmac
import os
import tempfile
import time
from urllib.parse import urlencode

UPLOAD_URL_TTL_SECONDS = 900


def local_url_signature(secret_key: str, method: str, object_key: str, expires: int, scope: str) -> str:
    """HMAC-SHA256 over everything a local signed URL grants.

    ``scope`` is the upload size cap for PUT URLs and the disposition for GET URLs,
    so neither can be altered without invalidating the signature.
    """
    message = "\n".join((method.upper(), object_key, str(expires), scope))
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_local_url_signature(
    secret_key: str,
    *,
    method: str,
    object_key: str,
    expires: int,
    scope: str,
    signature: str,
) -> bool:
    """Return False if the signature does not match or the URL has expired."""
    if int(time.time()) > expires:
        return False
    expected = local_url_signature(secret_key, method, object_key, expires, scope)
    return hmac.compare_digest(expected, signature)


def _content_disposition(file_name: str | None, inline: bool) -> str:
    kind = "inline" if inline else "attachment"
    if not file_name:
        return kind
    safe = file_name.replace('"', "").replace("\r", "").replace("\n", "")
    return f'{kind}; filename="{safe}"'


class StorageAdapter(ABC):
    """Blob store for document bytes.

    Implementations are synchronous; callers run them off the event loop.
    """

    provider: str = "local"
    bucket: str | None = None

    @abstractmethod
    def generate_upload_url(
        self, object_key: str, content_type: str, size_bytes: int
    ) -> Dict[str, Any]:
        """
        Returns:
            {
                "upload_url": "...",
                "method": "PUT",
                "headers": {...},
                "expires_in": 900
            }
        """

    @abstractmethod
    def generate_download_url(
        self,
        object_key: str,
        expires_in: int = 3600,
        *,
        file_name: str | None = None,
        inline: bool = False,
    ) -> str:
        pass

    @abstractmethod
    def put_object(self, object_key: str, content: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def delete_object(self, object_key: str) -> None:
        pass

    @abstractmethod
    def object_exists(self, object_key: str) -> bool:
        pass

    @abstractmethod
    def check(self) -> None:
        """Raise if the backing store cannot be reached."""

    def finalize_upload(self, object_key: str) -> str:
        """Confirm the object was persisted and return its storage id."""
        if not self.object_exists(object_key):
            raise FileNotFoundError(f"Object {object_key} has not been uploaded")
        return f"{self.provider}://{self.bucket or ''}/{object_key}"


class LocalFileSystemAdapter(StorageAdapter):
    """Stores objects under ``base_path``; URLs point at the signed local-content route."""

    def __init__(self, base_path: str, base_url: str, *, signing_key: str = ""):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.provider = "local"
        self.bucket = "local"
        self.base_path.mkdir(parents=True, exist_ok=True)

    def resolve_path(self, object_key: str) -> Path:
        if "\\" in object_key:
            raise ValueError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved == base or base not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def _signed_url(self, method: str, object_key: str, expires_in: int, scope_name: str, scope: str) -> str:
        expires = int(time.time()) + expires_in
        signature = local_url_signature(self.signing_key, method, object_key, expires, scope)
        params = urlencode(
            {"key": object_key, "expires": expires, scope_name: scope, "signature": signature}
        )
        return f"{self.base_url}/api/v1/storage/local-content?{params}"

    def generate_upload_url(
        self, object_key: str, content_type: str, size_bytes: int
    ) -> Dict[str, Any]:
        return {
            "upload_url": self._signed_url(
                "PUT", object_key, UPLOAD_URL_TTL_SECONDS, "max_bytes", str(size_bytes)
            ),
            "method": "PUT",
            "headers": {"Content-Type": content_type},
            "expires_in": UPLOAD_URL_TTL_SECONDS,
        }

    def generate_download_url(
        self,
        object_key: str,
        expires_in: int = 3600,
        *,
        file_name: str | None = None,
        inline: bool = False,
    ) -> str:
        return self._signed_url(
            "GET", object_key, expires_in, "disposition", "inline" if inline else "attachment"
        )

    def put_object(self, object_key: str, content: bytes, content_type: str) -> None:
        path = self.resolve_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write beside the target and rename so a partial write never looks uploaded.
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete_object(self, object_key: str) -> None:
        self.resolve_path(object_key).unlink(missing_ok=True)

    def object_exists(self, object_key: str) -> bool:
        try:
            path = self.resolve_path(object_key)
        except ValueError:
            return False
        return path.is_file()

    def check(self) -> None:
        if not self.base_path.is_dir() or not os.access(self.base_path, os.W_OK):
            raise OSError(f"Upload directory {self.base_path} is not writable")


class GCSStorageAdapter(StorageAdapter):
    def __init__(self, bucket: str, *, signed_url_expiry_seconds: int = 900):
        # Lazy import to avoid requiring dependency unless used
        from google.cloud import storage
        import google.auth
        import google.auth.transport.requests

        self.provider = "gcs"
        self.bucket = bucket
        self.signed_url_expiry_seconds = signed_url_expiry_seconds
        self.credentials, _ = google.auth.default()
        self._auth_request = google.auth.transport.requests.Request()
        self.client = storage.Client(credentials=self.credentials)
        self._bucket_ref = self.client.bucket(bucket)

    def _signing_kwargs(self) -> Dict[str, Any]:
        # Service account keys can sign directly.
        if hasattr(self.credentials, "sign_bytes"):
            return {"credentials": self.credentials}

        # Otherwise, use IAM SignBlob via access token + service account email.
        if not self.credentials.valid or self.credentials.expired or not self.credentials.token:
            self.credentials.refresh(self._auth_request)

        service_account_email = getattr(self.credentials, "service_account_email", None)
        if not service_account_email:
            raise RuntimeError(
                "GCS signed URL requires service account email; ensure the "
                "service account is available to ADC."
            )

        return {
            "service_account_email": service_account_email,
            "access_token": self.credentials.token,
        }

    def generate_upload_url(
        self, object_key: str, content_type: str, size_bytes: int
    ) -> Dict[str, Any]:
        # GCS rejects the PUT if the body exceeds the signed length range.
        headers = {"x-goog-content-length-range": f"0,{size_bytes}"}
        expires_in = min(self.signed_url_expiry_seconds, UPLOAD_URL_TTL_SECONDS)
        url = self._bucket_ref.blob(object_key).generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expires_in),
            method="PUT",
            content_type=content_type,
            headers=headers,
            **self._signing_kwargs(),
        )
        return {
            "upload_url": url,
            "method": "PUT",
            "headers": {"Content-Type": content_type, **headers},
            "expires_in": expires_in,
        }

    def generate_download_url(
        self,
        object_key: str,
        expires_in: int = 3600,
        *,
        file_name: str | None = None,
        inline: bool = False,
    ) -> str:
        return self._bucket_ref.blob(object_key).generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=expires_in),
            method="GET",
            response_disposition=_content_disposition(file_name, inline),
            **self._signing_kwargs(),
        )

    def put_object(self, object_key: str, content: bytes, content_type: str) -> None:
        self._bucket_ref.blob(object_key).upload_from_string(content, content_type=content_type)

    def delete_object(self, object_key: str) -> None:
        from google.api_core.exceptions import NotFound

        try:
            self._bucket_ref.blob(object_key).delete()
        except NotFound:
            return

    def object_exists(self, object_key: str) -> bool:
        return self._bucket_ref.blob(object_key).exists()

    def check(self) -> None:
        if not self._bucket_ref.exists():
            raise RuntimeError(f"GCS bucket {self.bucket} does not exist")

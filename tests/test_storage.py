from urllib.parse import parse_qs, urlencode, urlsplit

import pytest
from fastapi.testclient import TestClient

from portal.core.settings import settings
from portal.main import app
from portal.services.storage.adapter import LocalFileSystemAdapter

client = TestClient(app)

KEY = "documents/7d0c6f4e-0000-4000-8000-000000000001/1700000000-abc123-ledger.txt"


@pytest.fixture
def adapter() -> LocalFileSystemAdapter:
    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir, base_url="", signing_key=settings.secret_key
    )


def _tamper(url: str, **changes: str) -> str:
    parts = urlsplit(url)
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    query.update(changes)
    return f"{parts.path}?{urlencode(query)}"


def test_signed_upload_then_download(adapter) -> None:
    target = adapter.generate_upload_url(KEY, "text/plain", 16)
    assert target["method"] == "PUT"
    response = client.put(target["upload_url"], content=b"ledger rows", headers=target["headers"])
    assert response.status_code == 200
    assert adapter.finalize_upload(KEY) == f"local://local/{KEY}"

    url = adapter.generate_download_url(KEY, 60, inline=True)
    response = client.get(url)
    assert response.status_code == 200
    assert response.content == b"ledger rows"
    assert response.headers["content-disposition"].startswith("inline")


def test_upload_larger_than_signed_size_is_refused(adapter) -> None:
    target = adapter.generate_upload_url(KEY, "text/plain", 4)
    response = client.put(target["upload_url"], content=b"more than four bytes")
    assert response.status_code == 413


def test_tampered_urls_are_refused(adapter) -> None:
    target = adapter.generate_upload_url(KEY, "text/plain", 4)
    assert client.put(_tamper(target["upload_url"], max_bytes="999999"), content=b"x").status_code == 403

    adapter.put_object(KEY, b"abc", "text/plain")
    download = adapter.generate_download_url(KEY, 60)
    assert client.get(_tamper(download, disposition="inline")).status_code == 403
    # A download URL cannot be replayed as an upload.
    assert client.put(_tamper(download, max_bytes="3"), content=b"xyz").status_code == 403


def test_expired_url_is_refused(adapter) -> None:
    adapter.put_object(KEY, b"abc", "text/plain")
    url = adapter.generate_download_url(KEY, -1)
    assert client.get(url).status_code == 403


def test_local_keys_cannot_escape_the_upload_dir(adapter) -> None:
    for key in ("../etc/passwd", "/abs/path", "documents\\x", ""):
        with pytest.raises(ValueError):
            adapter.put_object(key, b"x", "text/plain")
        assert adapter.object_exists(key) is False


def test_delete_is_idempotent(adapter) -> None:
    adapter.put_object(KEY, b"abc", "text/plain")
    adapter.delete_object(KEY)
    adapter.delete_object(KEY)
    assert adapter.object_exists(KEY) is False
    with pytest.raises(FileNotFoundError):
        adapter.finalize_upload(KEY)

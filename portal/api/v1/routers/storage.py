from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse

from portal.core.limiter import limiter
from portal.core.settings import settings
from portal.services.storage.adapter import LocalFileSystemAdapter, verify_local_url_signature


router = APIRouter(prefix="/storage", tags=["storage"])


def _local_adapter(method: str, key: str, expires: int, scope: str, signature: str) -> LocalFileSystemAdapter:
    if settings.storage_provider != "local":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not supported")
    valid = verify_local_url_signature(
        settings.secret_key,
        method=method,
        object_key=key,
        expires=expires,
        scope=scope,
        signature=signature,
    )
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    return LocalFileSystemAdapter(base_path=settings.local_upload_dir, base_url="")


@router.put("/local-content", summary="Receive bytes for a signed local upload URL")
@limiter.exempt
async def upload_local_content(
    request: Request,
    key: str = Query(...),
    expires: int = Query(...),
    max_bytes: int = Query(..., ge=1),
    signature: str = Query(...),
) -> Response:
    adapter = _local_adapter("PUT", key, expires, str(max_bytes), signature)
    body = await request.body()
    if len(body) > min(max_bytes, settings.max_upload_size_bytes):
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large"
        )
    content_type = request.headers.get("content-type", "application/octet-stream")
    try:
        adapter.put_object(key, body, content_type)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_200_OK)


@router.get("/local-content", summary="Serve bytes for a signed local download URL")
@limiter.exempt
async def get_local_content(
    key: str = Query(...),
    expires: int = Query(...),
    disposition: str = Query(default="attachment", pattern="^(inline|attachment)$"),
    signature: str = Query(...),
) -> FileResponse:
    adapter = _local_adapter("GET", key, expires, disposition, signature)
    try:
        path = adapter.resolve_path(key)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    return FileResponse(path, filename=path.name, content_disposition_type=disposition)

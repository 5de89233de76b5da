from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from portal.api import deps
from portal.core.limiter import limiter
from portal.core.settings import settings
from portal.core.tenant import Actor
from portal.schemas.common import CountResponse, Disposition
from portal.schemas.documents import (
    DocumentCreate,
    DocumentDTO,
    DocumentFilters,
    DocumentListResponse,
    DocumentVersionCreate,
    DocumentVersionCreated,
    DocumentVersionDTO,
    DocumentVersionListResponse,
    DownloadUrlResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from portal.services import documents, uploads, versions
from portal.services.storage.adapter import StorageAdapter


router = APIRouter(prefix="/documents", tags=["documents"])


@router.post(
    "/upload-url",
    response_model=UploadUrlResponse,
    summary="Request a signed upload target for a new document",
)
@limiter.limit(lambda: settings.upload_rate_limit)
async def request_upload_url(
    request: Request,
    payload: UploadUrlRequest,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> UploadUrlResponse:
    target = await uploads.request_upload_target(
        db,
        actor,
        adapter,
        org_id=payload.org_id,
        file_name=payload.file_name,
        content_type=payload.content_type,
        size_bytes=payload.size_bytes,
    )
    return UploadUrlResponse(**target)


@router.post(
    "",
    response_model=DocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Register a document after a direct upload",
)
async def create_document(
    payload: DocumentCreate,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DocumentDTO:
    doc = await documents.create_document(db, actor, adapter, **payload.model_dump())
    return DocumentDTO.model_validate(doc)


@router.post(
    "/upload",
    response_model=DocumentDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document through the API",
)
@limiter.limit(lambda: settings.upload_rate_limit)
async def upload_document(
    request: Request,
    org_id: UUID = Form(...),
    category: str = Form(...),
    file: UploadFile = File(...),
    name: str | None = Form(default=None),
    folder_id: UUID | None = Form(default=None),
    description: str | None = Form(default=None),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DocumentDTO:
    # Reject oversize bodies before buffering them.
    if file.size is not None:
        uploads.validate_upload(file.filename, file.content_type, file.size)
    try:
        data = await file.read()
    finally:
        await file.close()
    doc = await documents.upload_document(
        db,
        actor,
        adapter,
        org_id=org_id,
        file_name=file.filename or "",
        content_type=file.content_type or "",
        data=data,
        category=category,
        name=name,
        folder_id=folder_id,
        description=description,
    )
    return DocumentDTO.model_validate(doc)


@router.get("", response_model=DocumentListResponse, summary="List documents")
async def list_documents(
    filters: DocumentFilters = Depends(deps.closed_query(DocumentFilters)),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentListResponse:
    docs = await documents.list_documents(db, actor, filters)
    items = [DocumentDTO.model_validate(doc) for doc in docs]
    return DocumentListResponse(items=items, total=len(items))


@router.get("/count", response_model=CountResponse, summary="Count visible documents")
async def count_documents(
    org_id: UUID | None = None,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> CountResponse:
    return CountResponse(count=await documents.count_documents(db, actor, org_id))


@router.get("/{document_id}", response_model=DocumentDTO, summary="Get a document")
async def get_document(
    document_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentDTO:
    return DocumentDTO.model_validate(await documents.get_document(db, actor, document_id))


@router.get(
    "/{document_id}/download",
    response_model=DownloadUrlResponse,
    summary="Mint a short-lived download or preview URL",
)
async def download_document(
    document_id: UUID,
    disposition: Disposition = Disposition.DOWNLOAD,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DownloadUrlResponse:
    url = await documents.get_download_url(
        db, actor, adapter, document_id, disposition=disposition
    )
    return DownloadUrlResponse(url=url, expires_in=settings.signed_url_expiry_seconds)


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
)
async def delete_document(
    document_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> None:
    await documents.delete_document(db, actor, adapter, document_id)
    return None


@router.get(
    "/{document_id}/versions",
    response_model=DocumentVersionListResponse,
    summary="List document versions, newest first",
)
async def list_versions(
    document_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> DocumentVersionListResponse:
    items = [
        DocumentVersionDTO.model_validate(v)
        for v in await versions.list_versions(db, actor, document_id)
    ]
    return DocumentVersionListResponse(items=items, total=len(items))


@router.post(
    "/{document_id}/versions",
    response_model=DocumentVersionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Append a new version to a document",
)
async def add_version(
    document_id: UUID,
    payload: DocumentVersionCreate,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DocumentVersionCreated:
    version = await versions.add_version(
        db, actor, adapter, document_id, **payload.model_dump()
    )
    return DocumentVersionCreated(document_id=document_id, version=version)


@router.get(
    "/{document_id}/versions/{version}/download",
    response_model=DownloadUrlResponse,
    summary="Mint a download URL for a specific version",
)
async def download_version(
    document_id: UUID,
    version: int,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
    adapter: StorageAdapter = Depends(deps.get_storage),
) -> DownloadUrlResponse:
    url = await versions.get_version_download_url(db, actor, adapter, document_id, version)
    return DownloadUrlResponse(url=url, expires_in=settings.signed_url_expiry_seconds)

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import DocumentCategory, DocumentSortField, SortOrder


class DocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    name: str
    description: str | None = None
    content_type: str
    size_bytes: int
    category: DocumentCategory
    folder_id: UUID | None = None
    service_type_id: UUID | None = None
    storage_provider: str
    storage_key: str
    current_version: int
    fiscal_year: str | None = None
    period: str | None = None
    tags: list[str] | None = None
    uploaded_by: UUID | None = None
    uploaded_at: datetime


class DocumentListResponse(BaseModel):
    items: list[DocumentDTO]
    total: int


class DocumentFilters(BaseModel):
    """Closed set of listing filters; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    org_id: UUID | None = None
    category: DocumentCategory | None = None
    folder_id: UUID | None = None
    service_type_id: UUID | None = None
    search: str | None = Field(default=None, max_length=200)
    sort_by: DocumentSortField = DocumentSortField.UPLOADED_AT
    sort_order: SortOrder = SortOrder.DESC


class DocumentCreate(BaseModel):
    org_id: UUID
    name: str = Field(min_length=1, max_length=255)
    storage_key: str = Field(min_length=1, max_length=1024)
    content_type: str = Field(min_length=1)
    size_bytes: int
    category: str
    folder_id: UUID | None = None
    service_type_id: UUID | None = None
    description: str | None = None
    fiscal_year: str | None = Field(default=None, max_length=20)
    period: str | None = Field(default=None, max_length=50)
    tags: list[str] | None = None


class UploadUrlRequest(BaseModel):
    org_id: UUID
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    size_bytes: int


class UploadUrlResponse(BaseModel):
    upload_url: str
    method: str
    required_headers: dict[str, str]
    expires_in: int | None = None
    storage_provider: str
    storage_bucket: str | None = None
    storage_key: str
    file_name: str


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int


class DocumentVersionDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version: int
    file_name: str
    content_type: str
    size_bytes: int
    uploaded_by: UUID | None = None
    uploaded_at: datetime


class DocumentVersionListResponse(BaseModel):
    items: list[DocumentVersionDTO]
    total: int


class DocumentVersionCreate(BaseModel):
    storage_key: str = Field(min_length=1, max_length=1024)
    file_name: str | None = Field(default=None, max_length=255)
    content_type: str | None = None
    size_bytes: int | None = None


class DocumentVersionCreated(BaseModel):
    document_id: UUID
    version: int

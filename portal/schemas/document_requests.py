from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal.schemas.common import DocumentCategory, RequestStatus


class DocumentRequestCreate(BaseModel):
    org_id: UUID
    client_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category: str
    due_date: date | None = None


class DocumentRequestDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    client_id: UUID
    requested_by: UUID
    title: str
    description: str | None = None
    category: DocumentCategory
    due_date: date | None = None
    status: RequestStatus
    document_id: UUID | None = None
    document_available: bool | None = None
    review_note: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    uploaded_at: datetime | None = None
    created_at: datetime


class DocumentRequestListResponse(BaseModel):
    items: list[DocumentRequestDTO]
    total: int


class DocumentRequestUpload(BaseModel):
    storage_key: str = Field(min_length=1, max_length=1024)
    file_name: str = Field(min_length=1, max_length=255)
    content_type: str = Field(min_length=1)
    size_bytes: int


class DocumentRequestReject(BaseModel):
    note: str

    @field_validator("note")
    @classmethod
    def strip_note(cls, v: str) -> str:
        return (v or "").strip()

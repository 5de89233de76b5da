from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from portal.schemas.common import SignatureStatus, SignatureType


class SignatureRequestCreate(BaseModel):
    document_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    expires_at: datetime | None = None


class SignatureRequestDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    document_id: UUID
    title: str
    description: str | None = None
    status: SignatureStatus
    display_status: SignatureStatus
    requested_by: UUID
    expires_at: datetime | None = None
    signed_by: UUID | None = None
    signed_at: datetime | None = None
    declined_at: datetime | None = None
    decline_reason: str | None = None
    created_at: datetime


class SignatureRequestListResponse(BaseModel):
    items: list[SignatureRequestDTO]
    total: int


class SignPayload(BaseModel):
    signature_type: SignatureType
    signature_data: str
    legal_name: str
    agreed_to_terms: bool


class DeclinePayload(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FolderCreate(BaseModel):
    org_id: UUID
    name: str = Field(min_length=1, max_length=100)
    parent_id: UUID | None = None
    service_type_id: UUID | None = None
    description: str | None = None
    color: str | None = Field(default=None, max_length=30)


class FolderUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, max_length=30)


class FolderMove(BaseModel):
    parent_id: UUID | None = None


class FolderDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    service_type_id: UUID | None = None
    parent_id: UUID | None = None
    name: str
    description: str | None = None
    color: str | None = None
    document_count: int = 0
    created_at: datetime | None = None


class FolderListResponse(BaseModel):
    items: list[FolderDTO]
    total: int


class BreadcrumbItem(BaseModel):
    id: UUID
    name: str


class BreadcrumbResponse(BaseModel):
    items: list[BreadcrumbItem]


class FolderTreeNode(BaseModel):
    id: UUID
    name: str
    parent_id: UUID | None = None
    service_type_id: UUID | None = None
    document_count: int = 0
    children: list[FolderTreeNode] = Field(default_factory=list)


class FolderTreeResponse(BaseModel):
    items: list[FolderTreeNode]

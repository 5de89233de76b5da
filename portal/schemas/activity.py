from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ActivityLogDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: UUID | None = None
    organization_id: UUID | None = None
    action: str
    resource_type: str
    resource_id: str
    resource_name: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class ActivityFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    org_id: UUID | None = None
    actor_id: UUID | None = None
    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None


class ActivityPage(BaseModel):
    items: list[ActivityLogDTO]
    next_cursor: str | None = None
    has_more: bool = False

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ServiceTypeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon: str = Field(default="folder", max_length=50)
    color: str = Field(default="gray", max_length=30)
    display_order: int = 0


class ServiceTypeUpdate(BaseModel):
    """Code is immutable once created and therefore not accepted here."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=50)
    color: str | None = Field(default=None, max_length=30)
    is_active: bool | None = None
    display_order: int | None = None


class ServiceTypeDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    icon: str
    color: str
    is_active: bool
    display_order: int


class ServiceTypeListResponse(BaseModel):
    items: list[ServiceTypeDTO]
    total: int

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class Folder(Base):
    __tablename__ = "folders"
    __table_args__ = (
        Index("ix_folders_org_service_parent", "organization_id", "service_type_id", "parent_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    service_type_id = Column(UUID(as_uuid=True), ForeignKey("service_types.id"), nullable=True)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("folders.id"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(30), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

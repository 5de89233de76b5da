import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_org_category", "organization_id", "category"),
        Index("ix_documents_org_folder", "organization_id", "folder_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    content_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    category = Column(String(50), nullable=False)
    folder_id = Column(UUID(as_uuid=True), ForeignKey("folders.id"), nullable=True)
    service_type_id = Column(UUID(as_uuid=True), ForeignKey("service_types.id"), nullable=True)
    storage_provider = Column(String(20), nullable=False)
    storage_bucket = Column(String(255), nullable=True)
    storage_key = Column(String(1024), nullable=False)
    current_version = Column(Integer, nullable=False, default=1)
    fiscal_year = Column(String(20), nullable=True)
    period = Column(String(50), nullable=True)
    tags = Column(JSON, nullable=True)
    uploaded_by = Column(UUID(as_uuid=True), nullable=True)
    uploaded_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
    deleted_at = Column(UTCDateTime, nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version", name="uq_document_versions_document_version"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version = Column(Integer, nullable=False)
    storage_key = Column(String(1024), nullable=False)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    uploaded_by = Column(UUID(as_uuid=True), nullable=True)
    uploaded_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())

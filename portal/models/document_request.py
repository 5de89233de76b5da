import uuid

from sqlalchemy import Column, Date, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class DocumentRequest(Base):
    __tablename__ = "document_requests"
    __table_args__ = (
        Index("ix_document_requests_org_status", "organization_id", "status"),
        Index("ix_document_requests_client_status", "client_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    client_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    requested_by = Column(UUID(as_uuid=True), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    # Plain column, not a foreign key: the linked document may be deleted later.
    document_id = Column(UUID(as_uuid=True), nullable=True)
    review_note = Column(Text, nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), nullable=True)
    reviewed_at = Column(UTCDateTime, nullable=True)
    uploaded_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

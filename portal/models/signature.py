import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class SignatureRequest(Base):
    __tablename__ = "signature_requests"
    __table_args__ = (
        Index("ix_signature_requests_org_status", "organization_id", "status"),
        Index("ix_signature_requests_document", "document_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False, index=True
    )
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    requested_by = Column(UUID(as_uuid=True), nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    signed_by = Column(UUID(as_uuid=True), nullable=True)
    signed_at = Column(UTCDateTime, nullable=True)
    declined_at = Column(UTCDateTime, nullable=True)
    decline_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())


class Signature(Base):
    __tablename__ = "signatures"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    signature_request_id = Column(
        UUID(as_uuid=True), ForeignKey("signature_requests.id"), nullable=False, unique=True
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    signature_type = Column(String(20), nullable=False)
    signature_data = Column(Text, nullable=False)
    legal_name = Column(String(200), nullable=False)
    agreed_to_terms = Column(Boolean, nullable=False, default=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    signed_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())

import uuid

from sqlalchemy import Column, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class User(Base):
    """Local mirror of an identity-provider account."""

    __tablename__ = "users"
    __table_args__ = (Index("ix_users_org_role", "organization_id", "role"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=True, index=True
    )
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())

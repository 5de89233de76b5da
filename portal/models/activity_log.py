from sqlalchemy import JSON, BigInteger, Column, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from portal.db.base import Base
from portal.models.types import UTCDateTime, utcnow


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_org_created", "organization_id", "created_at"),
        Index("ix_activity_logs_resource", "resource_type", "resource_id"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    actor_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    organization_id = Column(UUID(as_uuid=True), nullable=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(255), nullable=False)
    resource_name = Column(String(255), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, server_default=func.now())

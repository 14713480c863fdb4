import uuid

from sqlalchemy import (
    Column,
    String,
    DateTime,
    JSON,
    Index,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from db.database import Base


class SecurityEvent(Base):
    __tablename__ = "security_events"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    event_kind = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False, default="high")
    field = Column(String(255), nullable=True)
    client_ip = Column(String(64), nullable=True)
    request_id = Column(String(128), nullable=True)
    details = Column(JSON, default=dict, server_default=text("'{}'::jsonb"))
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_security_events_kind_created", "event_kind", "created_at"),
    )

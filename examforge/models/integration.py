"""Integration models."""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from enum import Enum
from examforge.database import Base
from examforge.db.types import EncryptedJSON, JSONBType, GUID
from examforge.utils.time import utcnow


class IntegrationType(str, Enum):
    """Integration categories."""

    LMS = "lms"
    WEBHOOK = "webhook"
    SSO = "sso"
    AI = "ai"


class IntegrationStatus(str, Enum):
    """Integration connection status."""

    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"
    INACTIVE = "inactive"


class EventStatus(str, Enum):
    """Integration event severity."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SyncType(str, Enum):
    """LMS sync operation types."""

    ROSTER = "roster"
    COURSES = "courses"
    ASSIGNMENTS = "assignments"
    GRADES = "grades"


class SyncStatus(str, Enum):
    """LMS sync operation status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncDirection(str, Enum):
    """Direction of data flow for a sync operation."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    BIDIRECTIONAL = "bidirectional"


class Integration(Base):
    """A team's configured connection to one external system."""

    __tablename__ = "integrations"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    team_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(SQLEnum(IntegrationType), nullable=False, index=True)
    provider = Column(String(100), nullable=False)
    status = Column(SQLEnum(IntegrationStatus), nullable=False, default=IntegrationStatus.PENDING, index=True)
    credentials = Column(EncryptedJSON(), nullable=False, default=dict)
    config = Column(JSONBType(), nullable=False, default=dict)
    events = Column(JSONBType(), nullable=False, default=list)  # subscribed webhook events
    delivery_url = Column(String(1024), nullable=True)
    features = Column(JSONBType(), nullable=False, default=list)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    integration_events = relationship(
        "IntegrationEvent", back_populates="integration", cascade="all, delete-orphan"
    )
    sync_operations = relationship(
        "SyncOperationRecord", back_populates="integration", cascade="all, delete-orphan"
    )
    deliveries = relationship(
        "WebhookDelivery", back_populates="integration", cascade="all, delete-orphan"
    )


class IntegrationEvent(Base):
    """Append-only log entry scoped to one integration."""

    __tablename__ = "integration_events"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String(100), nullable=False, index=True)
    status = Column(SQLEnum(EventStatus), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONBType(), nullable=True)
    duration = Column(Integer, nullable=True)  # milliseconds
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    integration = relationship("Integration", back_populates="integration_events")


class SyncOperationRecord(Base):
    """Persisted outcome of one LMS sync pass."""

    __tablename__ = "sync_operations"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(SQLEnum(SyncType), nullable=False)
    direction = Column(SQLEnum(SyncDirection), nullable=False, default=SyncDirection.INBOUND)
    status = Column(SQLEnum(SyncStatus), nullable=False, default=SyncStatus.PENDING, index=True)
    records_processed = Column(Integer, nullable=False, default=0)
    records_succeeded = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    errors = Column(JSONBType(), nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    integration = relationship("Integration", back_populates="sync_operations")

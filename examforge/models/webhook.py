"""Webhook delivery models."""
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
from enum import Enum
from examforge.database import Base
from examforge.db.types import JSONBType, GUID
from examforge.utils.time import utcnow


class WebhookEvent(str, Enum):
    """Webhook event types."""

    QUIZ_CREATED = "quiz.created"
    QUIZ_UPDATED = "quiz.updated"
    QUIZ_DELETED = "quiz.deleted"
    QUIZ_PUBLISHED = "quiz.published"
    RESPONSE_SUBMITTED = "response.submitted"
    RESPONSE_GRADED = "response.graded"
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    TEAM_CREATED = "team.created"
    TEAM_UPDATED = "team.updated"
    CERTIFICATE_ISSUED = "certificate.issued"
    CERTIFICATE_REVOKED = "certificate.revoked"


class DeliveryStatus(str, Enum):
    """Webhook delivery status."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class WebhookDelivery(Base):
    """One emitted event sent to one webhook integration."""

    __tablename__ = "webhook_deliveries"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    integration_id = Column(
        GUID(), ForeignKey("integrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event = Column(String(100), nullable=False, index=True)
    payload = Column(JSONBType(), nullable=False)  # signed payload as sent
    url = Column(String(1024), nullable=False)
    status = Column(SQLEnum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING, index=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    integration = relationship("Integration", back_populates="deliveries")
    retries = relationship(
        "WebhookRetry", back_populates="delivery", cascade="all, delete-orphan", order_by="WebhookRetry.attempt"
    )


class WebhookRetry(Base):
    """Scheduled future retry of a delivery."""

    __tablename__ = "webhook_retries"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4, index=True)
    delivery_id = Column(
        GUID(), ForeignKey("webhook_deliveries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt = Column(Integer, nullable=False)
    retry_at = Column(DateTime(timezone=True), nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    delivery = relationship("WebhookDelivery", back_populates="retries")

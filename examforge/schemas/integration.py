"""Integration schemas."""
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID
from pydantic import BaseModel, Field
from datetime import datetime
from examforge.models.integration import (
    EventStatus,
    IntegrationStatus,
    IntegrationType,
    SyncDirection,
    SyncStatus,
    SyncType,
)
from examforge.utils.time import utcnow


class WebhookConfig(BaseModel):
    """Delivery settings of a webhook integration."""

    retry_attempts: int = Field(3, ge=0, le=10)
    retry_delay: float = Field(5, ge=1, le=300)  # seconds
    timeout: float = Field(10, ge=1, le=30)  # seconds
    verify_ssl: bool = True
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    # hmac adds no Authorization header; every delivery already carries X-ExamForge-Signature
    auth_type: Literal["none", "bearer", "basic", "hmac"] = "none"
    auth_value: Optional[str] = None


class LMSConfig(BaseModel):
    """Sync settings of an LMS integration."""

    sync_interval: int = Field(60, ge=5)  # minutes
    auto_sync: bool = False
    sync_rosters: bool = True
    sync_assignments: bool = True
    sync_grades: bool = False


class IntegrationCreate(BaseModel):
    """Integration creation schema."""

    team_id: str
    name: str = Field(..., min_length=1, max_length=255)
    type: IntegrationType
    provider: str
    config: Dict[str, Any] = Field(default_factory=dict)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    events: List[str] = Field(default_factory=list)
    delivery_url: Optional[str] = None


class IntegrationUpdate(BaseModel):
    """Integration update schema."""

    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    credentials: Optional[Dict[str, Any]] = None
    events: Optional[List[str]] = None
    delivery_url: Optional[str] = None


class IntegrationResponse(BaseModel):
    """Integration response schema (credentials are never returned)."""

    id: UUID
    team_id: str
    name: str
    type: IntegrationType
    provider: str
    status: IntegrationStatus
    config: Dict[str, Any]
    events: List[str]
    delivery_url: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IntegrationEventResponse(BaseModel):
    """Integration event response schema."""

    id: UUID
    integration_id: UUID
    type: str
    status: EventStatus
    message: str
    data: Optional[Dict[str, Any]] = None
    duration: Optional[int] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class SyncError(BaseModel):
    """Failure of one external record during a sync."""

    record_id: Optional[str] = None
    message: str
    code: str


class SyncOperation(BaseModel):
    """One sync pass and its per-record outcome counts."""

    id: Optional[UUID] = None
    type: SyncType
    direction: SyncDirection = SyncDirection.INBOUND
    status: SyncStatus = SyncStatus.PENDING
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    errors: List[SyncError] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncRequest(BaseModel):
    """Manual sync request."""

    type: SyncType
    direction: SyncDirection = SyncDirection.INBOUND


class ConnectionResult(BaseModel):
    """Outcome of a connect or test call."""

    success: bool
    status: IntegrationStatus


class TeamAnalytics(BaseModel):
    """Integration usage summary for one team."""

    total_integrations: int
    active_integrations: int
    inactive_integrations: int
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    success_rate: float
    recent_events: List[IntegrationEventResponse]


class IntegrationCreatedResponse(IntegrationResponse):
    """Creation response; carries the webhook signing secret exactly once."""

    secret: Optional[str] = None

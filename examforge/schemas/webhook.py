"""Webhook schemas."""
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field
from datetime import datetime
from examforge.models.webhook import DeliveryStatus


class WebhookTeam(BaseModel):
    """Team that owns the emitting integration."""

    id: str
    name: str


class WebhookPayload(BaseModel):
    """Body POSTed to a webhook endpoint."""

    event: str
    timestamp: str
    data: Dict[str, Any] = Field(default_factory=dict)
    team: WebhookTeam
    signature: Optional[str] = None


class WebhookDeliveryResponse(BaseModel):
    """Webhook delivery response schema."""

    id: UUID
    integration_id: UUID
    event: str
    payload: Dict[str, Any]
    url: str
    status: DeliveryStatus
    error: Optional[str] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class DeliveryStats(BaseModel):
    """Delivery counts over a trailing window."""

    total: int
    delivered: int
    failed: int
    pending: int
    success_rate: float


class EmitRequest(BaseModel):
    """Event emitted to a team's webhook subscribers."""

    team_id: str
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)
    team_name: Optional[str] = None

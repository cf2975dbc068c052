"""Webhook delivery API endpoints."""
from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from examforge.core.exceptions import ValidationError
from examforge.database import get_db
from examforge.integrations.signing import verify_webhook_request
from examforge.integrations.webhook.manager import WebhookManager
from examforge.models.integration import IntegrationType
from examforge.schemas.webhook import DeliveryStats, EmitRequest, WebhookDeliveryResponse
from examforge.services.integration_service import integration_service

router = APIRouter()


async def _get_manager(integration_id: UUID, db: AsyncSession) -> WebhookManager:
    obj = await integration_service.get_integration(db, integration_id)
    if obj.type != IntegrationType.WEBHOOK:
        raise ValidationError("Integration is not a webhook")
    return integration_service.provider_for(obj)


@router.get("/{integration_id}/deliveries", response_model=List[WebhookDeliveryResponse])
async def list_deliveries(
    integration_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent deliveries first."""
    manager = await _get_manager(integration_id, db)
    return await manager.get_delivery_history(limit=limit)


@router.get("/{integration_id}/stats", response_model=DeliveryStats)
async def delivery_stats(
    integration_id: UUID,
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Delivery counts over the trailing window."""
    manager = await _get_manager(integration_id, db)
    return await manager.get_delivery_stats(days=days)


@router.post("/emit", status_code=202)
async def emit_event(emit_in: EmitRequest):
    """Emit an event to the team's subscribed webhooks."""
    targeted = await integration_service.emitter.emit(
        emit_in.team_id, emit_in.event, emit_in.data, team_name=emit_in.team_name
    )
    return {"targeted": targeted}


@router.post("/{integration_id}/verify")
async def verify_signature(
    integration_id: UUID,
    request: Request,
    x_examforge_signature: str = Header(""),
    db: AsyncSession = Depends(get_db),
):
    """Check a delivered body against its signature header using the integration's secret."""
    manager = await _get_manager(integration_id, db)
    body = await request.body()
    return {"valid": verify_webhook_request(body, x_examforge_signature, manager.secret)}

"""Integrations API endpoints."""
from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from examforge.database import get_db
from examforge.schemas.integration import (
    ConnectionResult,
    IntegrationCreate,
    IntegrationCreatedResponse,
    IntegrationEventResponse,
    IntegrationResponse,
    IntegrationUpdate,
    SyncOperation,
    SyncRequest,
    TeamAnalytics,
)
from examforge.services.integration_service import integration_service

router = APIRouter()


@router.get("", response_model=List[IntegrationResponse])
async def list_integrations(team_id: str, db: AsyncSession = Depends(get_db)):
    """List a team's integrations."""
    return await integration_service.list_team_integrations(db, team_id)


@router.post("", response_model=IntegrationCreatedResponse, status_code=201)
async def create_integration(integration_in: IntegrationCreate, db: AsyncSession = Depends(get_db)):
    """Create an integration."""
    obj, secret = await integration_service.create_integration(db, integration_in)
    response = IntegrationCreatedResponse.model_validate(obj)
    response.secret = secret
    return response


@router.get("/analytics", response_model=TeamAnalytics)
async def team_analytics(
    team_id: str,
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Integration usage summary for a team."""
    return await integration_service.get_team_analytics(db, team_id, days=days)


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(integration_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get an integration by ID."""
    return await integration_service.get_integration(db, integration_id)


@router.put("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: UUID,
    integration_in: IntegrationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update an integration."""
    return await integration_service.update_integration(db, integration_id, integration_in)


@router.delete("/{integration_id}", status_code=204)
async def delete_integration(integration_id: UUID, db: AsyncSession = Depends(get_db)):
    """Delete an integration."""
    await integration_service.delete_integration(db, integration_id)


@router.post("/{integration_id}/test", response_model=ConnectionResult)
async def test_integration(integration_id: UUID, db: AsyncSession = Depends(get_db)):
    """Check connectivity without changing status."""
    success = await integration_service.test_integration(db, integration_id)
    obj = await integration_service.get_integration(db, integration_id)
    return ConnectionResult(success=success, status=obj.status)


@router.post("/{integration_id}/connect", response_model=ConnectionResult)
async def connect_integration(integration_id: UUID, db: AsyncSession = Depends(get_db)):
    """Connect (or reconnect) an integration."""
    obj = await integration_service.connect_integration(db, integration_id)
    return ConnectionResult(success=obj.status.value == "active", status=obj.status)


@router.post("/{integration_id}/disconnect", response_model=ConnectionResult)
async def disconnect_integration(integration_id: UUID, db: AsyncSession = Depends(get_db)):
    """Disconnect an integration."""
    obj = await integration_service.disconnect_integration(db, integration_id)
    return ConnectionResult(success=True, status=obj.status)


@router.post("/{integration_id}/sync", response_model=SyncOperation)
async def sync_integration(
    integration_id: UUID,
    sync_in: SyncRequest,
    db: AsyncSession = Depends(get_db),
):
    """Run a sync pass now."""
    record = await integration_service.sync_integration(db, integration_id, sync_in)
    return SyncOperation.model_validate(record)


@router.get("/{integration_id}/events", response_model=List[IntegrationEventResponse])
async def list_integration_events(
    integration_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent integration events first."""
    return await integration_service.get_integration_events(db, integration_id, limit=limit)

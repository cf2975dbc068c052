"""Celery tasks for scheduled LMS sync."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from examforge.crud.integration import integration as integration_crud
from examforge.database import AsyncSessionLocal
from examforge.models.integration import Integration, IntegrationStatus, IntegrationType, SyncType
from examforge.schemas.integration import LMSConfig, SyncRequest
from examforge.services.integration_service import IntegrationService
from examforge.tasks.celery_app import celery_app
from examforge.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


def sync_types_for(config: LMSConfig) -> List[SyncType]:
    types = [SyncType.COURSES]
    if config.sync_rosters:
        types.append(SyncType.ROSTER)
    if config.sync_assignments:
        types.append(SyncType.ASSIGNMENTS)
    if config.sync_grades:
        types.append(SyncType.GRADES)
    return types


def is_sync_due(integration: Integration, config: LMSConfig, now: Optional[datetime] = None) -> bool:
    if not config.auto_sync:
        return False
    if integration.last_sync_at is None:
        return True
    now = now or utcnow()
    return as_utc(integration.last_sync_at) + timedelta(minutes=config.sync_interval) <= now


async def sync_integration_types(db, service: IntegrationService, integration_id, sync_types: List[SyncType]) -> bool:
    """Run ``sync_types`` in order, stopping once the integration leaves ``active``. Returns True if all ran."""
    for sync_type in sync_types:
        obj = await service.get_integration(db, integration_id)
        if obj.status != IntegrationStatus.ACTIVE:
            logger.warning(
                "Auto-sync for integration %s stopped before %s: status is %s",
                integration_id,
                sync_type.value,
                obj.status.value,
            )
            return False
        record = await service.sync_integration(db, integration_id, SyncRequest(type=sync_type))
        logger.info("Auto-sync %s for integration %s finished with %s", sync_type.value, integration_id, record.status.value)
    return True


async def run_due_syncs(session_factory=None, service: Optional[IntegrationService] = None, now=None) -> int:
    """Sync every active LMS integration whose interval has elapsed. Returns how many were fully synced.

    Each integration runs in its own session; a failure in one never stops the others.
    """
    session_factory = session_factory or AsyncSessionLocal
    service = service or IntegrationService(session_factory=session_factory)

    async with session_factory() as db:
        integrations = await integration_crud.get_active_by_type(db, type=IntegrationType.LMS)
        due = []
        for obj in integrations:
            config = LMSConfig.model_validate(obj.config or {})
            if is_sync_due(obj, config, now):
                due.append((obj.id, sync_types_for(config)))

    synced = 0
    for integration_id, sync_types in due:
        try:
            async with session_factory() as db:
                if await sync_integration_types(db, service, integration_id, sync_types):
                    synced += 1
        except Exception:
            logger.exception("Auto-sync failed for integration %s", integration_id)
    return synced


@celery_app.task
def run_lms_auto_sync():
    """Run scheduled LMS syncs (called by Celery Beat)."""
    return asyncio.run(run_due_syncs())

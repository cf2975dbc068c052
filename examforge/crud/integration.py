"""Integration CRUD operations."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from examforge.crud.base import CRUDBase
from examforge.models.integration import (
    Integration,
    IntegrationEvent,
    IntegrationStatus,
    IntegrationType,
    SyncOperationRecord,
    SyncStatus,
)
from examforge.models.lms import (
    LMSAssignmentRecord,
    LMSCourseRecord,
    LMSEnrollmentRecord,
    LMSUserRecord,
)
from examforge.schemas.integration import IntegrationCreate, IntegrationUpdate


class CRUDIntegration(CRUDBase[Integration, IntegrationCreate, IntegrationUpdate]):
    """CRUD operations for Integration."""

    async def get_by_team(self, db: AsyncSession, *, team_id: str) -> List[Integration]:
        result = await db.execute(
            select(Integration).where(Integration.team_id == team_id).order_by(Integration.created_at.desc())
        )
        return list(result.scalars().all())

    async def count_by_team(self, db: AsyncSession, *, team_id: str) -> int:
        result = await db.execute(select(func.count(Integration.id)).where(Integration.team_id == team_id))
        return result.scalar_one()

    async def get_active_by_type(self, db: AsyncSession, *, type: IntegrationType) -> List[Integration]:
        result = await db.execute(
            select(Integration).where(Integration.type == type, Integration.status == IntegrationStatus.ACTIVE)
        )
        return list(result.scalars().all())

    async def remove(self, db: AsyncSession, *, id: UUID) -> Optional[Integration]:
        """Delete an integration together with its imported LMS records."""
        for model in (LMSEnrollmentRecord, LMSUserRecord, LMSCourseRecord, LMSAssignmentRecord):
            await db.execute(delete(model).where(model.integration_id == id))
        return await super().remove(db, id=id)


class CRUDSyncOperation(CRUDBase[SyncOperationRecord, dict, dict]):
    """CRUD operations for SyncOperationRecord."""

    async def count_by_status(
        self,
        db: AsyncSession,
        *,
        integration_ids: List[UUID],
        since: datetime,
    ) -> dict:
        if not integration_ids:
            return {}
        result = await db.execute(
            select(SyncOperationRecord.status, func.count(SyncOperationRecord.id))
            .where(
                SyncOperationRecord.integration_id.in_(integration_ids),
                SyncOperationRecord.started_at >= since,
            )
            .group_by(SyncOperationRecord.status)
        )
        return {SyncStatus(status): count for status, count in result.all()}


class CRUDIntegrationEvent(CRUDBase[IntegrationEvent, dict, dict]):
    """Read access to integration events."""

    async def recent_for(
        self,
        db: AsyncSession,
        *,
        integration_ids: List[UUID],
        since: datetime,
        limit: int = 20,
    ) -> List[IntegrationEvent]:
        if not integration_ids:
            return []
        result = await db.execute(
            select(IntegrationEvent)
            .where(IntegrationEvent.integration_id.in_(integration_ids), IntegrationEvent.timestamp >= since)
            .order_by(IntegrationEvent.timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


integration = CRUDIntegration(Integration)
sync_operation = CRUDSyncOperation(SyncOperationRecord)
integration_event = CRUDIntegrationEvent(IntegrationEvent)

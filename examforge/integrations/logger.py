"""Durable per-integration event log."""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from examforge.config import settings
from examforge.models.integration import EventStatus, IntegrationEvent

logger = logging.getLogger(__name__)


class IntegrationLogger:
    """Append events for one integration to the ``integration_events`` table."""

    def __init__(self, integration_id: UUID, session_factory: async_sessionmaker):
        self.integration_id = integration_id
        self._session_factory = session_factory

    async def log(
        self,
        event_type: str,
        status: EventStatus,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        duration: Optional[int] = None,
    ) -> None:
        async with self._session_factory() as db:
            db.add(
                IntegrationEvent(
                    integration_id=self.integration_id,
                    type=event_type,
                    status=EventStatus(status),
                    message=message,
                    data=data,
                    duration=duration,
                )
            )
            await db.commit()

        if not settings.is_production:
            logger.info("[Integration %s] %s: %s", self.integration_id, event_type, message, extra={"event": data})

    async def get_events(self, limit: int = 50) -> List[IntegrationEvent]:
        """Most recent events first."""
        async with self._session_factory() as db:
            return await list_events(db, self.integration_id, limit=limit)


async def list_events(db: AsyncSession, integration_id: UUID, limit: int = 50) -> List[IntegrationEvent]:
    result = await db.execute(
        select(IntegrationEvent)
        .where(IntegrationEvent.integration_id == integration_id)
        .order_by(IntegrationEvent.timestamp.desc())
        .limit(limit)
    )
    return list(result.scalars().all())

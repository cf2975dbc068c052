"""Process-wide registry of active webhook integrations and event fan-out."""
import asyncio
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from examforge.database import AsyncSessionLocal
from examforge.integrations.webhook.manager import WebhookManager
from examforge.models.integration import Integration, IntegrationStatus, IntegrationType
from examforge.schemas.webhook import WebhookPayload, WebhookTeam
from examforge.utils.time import isoformat, utcnow

logger = logging.getLogger(__name__)


class WebhookEventEmitter:
    """Dispatch events to every subscribed webhook integration of a team.

    The registry lives in this process only; other instances learn about new
    integrations through their own ``add_integration`` calls or ``initialize``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.transport = transport
        self._managers: Dict[UUID, WebhookManager] = {}

    @property
    def managers(self) -> Dict[UUID, WebhookManager]:
        return dict(self._managers)

    def _build_manager(self, integration: Integration) -> WebhookManager:
        return WebhookManager(integration, session_factory=self.session_factory, transport=self.transport)

    async def initialize(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> int:
        """Load every active webhook integration. Returns the registry size."""
        if session_factory is not None:
            self.session_factory = session_factory
        if transport is not None:
            self.transport = transport

        async with self.session_factory() as db:
            result = await db.execute(
                select(Integration).where(
                    Integration.type == IntegrationType.WEBHOOK,
                    Integration.status == IntegrationStatus.ACTIVE,
                )
            )
            integrations = result.scalars().all()

        self._managers = {integration.id: self._build_manager(integration) for integration in integrations}
        logger.info("Webhook emitter initialized with %d integrations", len(self._managers))
        return len(self._managers)

    async def emit(
        self,
        team_id: str,
        event: str,
        data: Dict[str, Any],
        team_name: Optional[str] = None,
    ) -> int:
        """Deliver ``event`` to the team's subscribers concurrently. Returns how many were targeted.

        A failing subscriber never affects the others; its failure is recorded
        by its own manager. Managers whose integration has left ``active`` (for
        example after an authentication failure) are skipped until reconnected.
        """
        event = getattr(event, "value", event)
        payload = WebhookPayload(
            event=event,
            timestamp=isoformat(utcnow()),
            data=data,
            team=WebhookTeam(id=team_id, name=team_name or team_id),
        )

        targets: List[WebhookManager] = [
            manager
            for manager in self._managers.values()
            if manager.integration.team_id == team_id
            and manager.integration.status == IntegrationStatus.ACTIVE
            and event in (manager.integration.events or [])
        ]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(manager.deliver_webhook(payload.model_copy(deep=True)) for manager in targets),
            return_exceptions=True,
        )
        for manager, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Webhook %s delivery to integration %s failed: %s", event, manager.integration_id, result
                )
        return len(targets)

    async def add_integration(self, integration: Integration) -> None:
        self._managers[integration.id] = self._build_manager(integration)

    async def remove_integration(self, integration_id: UUID) -> None:
        self._managers.pop(integration_id, None)


webhook_emitter = WebhookEventEmitter()

"""Integration lifecycle service."""
import logging
import secrets
from datetime import timedelta
from typing import List, Optional, Tuple
from uuid import UUID

import httpx
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from examforge.config import settings
from examforge.core.exceptions import ConflictError, NotFoundError, ValidationError
from examforge.crud.integration import integration as integration_crud
from examforge.crud.integration import integration_event as event_crud
from examforge.crud.integration import sync_operation as sync_crud
from examforge.database import AsyncSessionLocal
from examforge.integrations.base import BaseIntegrationProvider
from examforge.integrations.logger import IntegrationLogger
from examforge.integrations.registry import get_provider
from examforge.integrations.validation import ConfigValidator
from examforge.integrations.webhook.emitter import WebhookEventEmitter, webhook_emitter
from examforge.models.integration import (
    EventStatus,
    Integration,
    IntegrationEvent,
    IntegrationStatus,
    IntegrationType,
    SyncOperationRecord,
    SyncStatus,
)
from examforge.models.webhook import WebhookEvent
from examforge.schemas.integration import (
    IntegrationCreate,
    IntegrationEventResponse,
    IntegrationUpdate,
    LMSConfig,
    SyncOperation,
    SyncRequest,
    TeamAnalytics,
    WebhookConfig,
)
from examforge.utils.time import utcnow

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS = {event.value for event in WebhookEvent}


class IntegrationService:
    """Create, configure, connect and sync team integrations."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        emitter: Optional[WebhookEventEmitter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.emitter = emitter or webhook_emitter
        self.transport = transport

    def provider_for(self, integration: Integration) -> BaseIntegrationProvider:
        return get_provider(integration, session_factory=self.session_factory, transport=self.transport)

    async def get_integration(self, db: AsyncSession, integration_id: UUID) -> Integration:
        obj = await integration_crud.get(db, id=integration_id)
        if obj is None:
            raise NotFoundError("Integration not found")
        return obj

    async def list_team_integrations(self, db: AsyncSession, team_id: str) -> List[Integration]:
        return await integration_crud.get_by_team(db, team_id=team_id)

    @staticmethod
    def _validate_webhook(delivery_url: Optional[str], config: dict, events: List[str]) -> dict:
        if not delivery_url or not ConfigValidator.validate_url(delivery_url):
            raise ValidationError("A valid delivery_url is required for webhook integrations")
        unknown = sorted(set(events) - WEBHOOK_EVENTS)
        if unknown:
            raise ValidationError(f"Unknown webhook events: {', '.join(unknown)}")
        try:
            return WebhookConfig.model_validate(config).model_dump()
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid webhook configuration: {exc}") from exc

    @staticmethod
    def _validate_lms(config: dict) -> dict:
        try:
            return {**config, **LMSConfig.model_validate(config).model_dump()}
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid LMS configuration: {exc}") from exc

    async def create_integration(self, db: AsyncSession, obj_in: IntegrationCreate) -> Tuple[Integration, Optional[str]]:
        """Create a pending integration. Webhooks get a fresh secret and are connected right away.

        Returns the integration and, for webhooks, the generated secret.
        """
        count = await integration_crud.count_by_team(db, team_id=obj_in.team_id)
        if count >= settings.MAX_INTEGRATIONS_PER_TEAM:
            raise ConflictError(
                f"Integration limit reached ({settings.MAX_INTEGRATIONS_PER_TEAM}) for team {obj_in.team_id}"
            )

        data = obj_in.model_dump()
        secret = None
        if obj_in.type == IntegrationType.WEBHOOK:
            data["config"] = self._validate_webhook(obj_in.delivery_url, obj_in.config, obj_in.events)
            secret = secrets.token_hex(32)
            data["credentials"] = {**obj_in.credentials, "secret": secret}
        elif obj_in.type == IntegrationType.LMS:
            data["config"] = self._validate_lms(obj_in.config)
        data["status"] = IntegrationStatus.PENDING

        obj = await integration_crud.create(db, obj_in=data)
        await IntegrationLogger(obj.id, self.session_factory).log(
            "integration_created", EventStatus.SUCCESS, f'Integration "{obj.name}" created'
        )
        logger.info("Created %s integration %s for team %s", obj.type.value, obj.id, obj.team_id)

        if obj.type == IntegrationType.WEBHOOK:
            await self._activate_webhook(obj)
            await db.refresh(obj)
        return obj, secret

    async def _activate_webhook(self, obj: Integration) -> bool:
        provider = self.provider_for(obj)
        connected = await provider.connect()
        if connected:
            async with self.session_factory() as session:
                fresh = await session.get(Integration, obj.id)
            await self.emitter.add_integration(fresh)
        else:
            await self.emitter.remove_integration(obj.id)
        return connected

    async def update_integration(self, db: AsyncSession, integration_id: UUID, obj_in: IntegrationUpdate) -> Integration:
        obj = await self.get_integration(db, integration_id)
        data = {k: v for k, v in obj_in.model_dump(exclude_unset=True).items() if v is not None}

        if obj.type == IntegrationType.WEBHOOK:
            config = self._validate_webhook(
                data.get("delivery_url", obj.delivery_url),
                data.get("config", obj.config),
                data.get("events", obj.events),
            )
            if "config" in data:
                data["config"] = config
            if "credentials" in data:
                # The signing secret is only ever generated server-side
                data["credentials"] = {**data["credentials"], "secret": obj.credentials.get("secret")}
        elif obj.type == IntegrationType.LMS and "config" in data:
            data["config"] = self._validate_lms(data["config"])

        obj = await integration_crud.update(db, db_obj=obj, obj_in=data)
        await IntegrationLogger(obj.id, self.session_factory).log(
            "integration_updated", EventStatus.SUCCESS, f'Integration "{obj.name}" updated'
        )

        if obj.type == IntegrationType.WEBHOOK:
            await self._activate_webhook(obj)
            await db.refresh(obj)
        return obj

    async def delete_integration(self, db: AsyncSession, integration_id: UUID) -> None:
        await self.get_integration(db, integration_id)
        await self.emitter.remove_integration(integration_id)
        await integration_crud.remove(db, id=integration_id)
        logger.info("Deleted integration %s", integration_id)

    async def test_integration(self, db: AsyncSession, integration_id: UUID) -> bool:
        obj = await self.get_integration(db, integration_id)
        connected = await self.provider_for(obj).test_connection()
        await IntegrationLogger(obj.id, self.session_factory).log(
            "connection_test_success" if connected else "connection_test_failed",
            EventStatus.SUCCESS if connected else EventStatus.ERROR,
            "Connection test succeeded" if connected else "Connection test failed",
        )
        return connected

    async def connect_integration(self, db: AsyncSession, integration_id: UUID) -> Integration:
        obj = await self.get_integration(db, integration_id)
        if obj.type == IntegrationType.WEBHOOK:
            await self._activate_webhook(obj)
        else:
            await self.provider_for(obj).connect()
        await db.refresh(obj)
        return obj

    async def disconnect_integration(self, db: AsyncSession, integration_id: UUID) -> Integration:
        obj = await self.get_integration(db, integration_id)
        await self.provider_for(obj).disconnect()
        if obj.type == IntegrationType.WEBHOOK:
            await self.emitter.remove_integration(obj.id)
        await db.refresh(obj)
        return obj

    async def sync_integration(self, db: AsyncSession, integration_id: UUID, request: SyncRequest) -> SyncOperationRecord:
        """Run a sync pass now and persist its outcome."""
        obj = await self.get_integration(db, integration_id)
        if obj.status != IntegrationStatus.ACTIVE:
            raise ValidationError("Integration is not active")

        record = await sync_crud.create(
            db,
            obj_in={
                "integration_id": obj.id,
                "type": request.type,
                "direction": request.direction,
                "status": SyncStatus.PENDING,
            },
        )
        await IntegrationLogger(obj.id, self.session_factory).log(
            "sync_started",
            EventStatus.INFO,
            f"{request.type.value} sync started",
            {"sync_operation_id": str(record.id), "sync_type": request.type.value, "direction": request.direction.value},
        )

        operation = SyncOperation(
            id=record.id, type=request.type, direction=request.direction, started_at=record.started_at
        )
        result = await self.provider_for(obj).sync(operation)

        return await sync_crud.update(
            db,
            db_obj=record,
            obj_in={
                "status": result.status,
                "records_processed": result.records_processed,
                "records_succeeded": result.records_succeeded,
                "records_failed": result.records_failed,
                "errors": [error.model_dump() for error in result.errors],
                "completed_at": result.completed_at or utcnow(),
            },
        )

    async def get_integration_events(self, db: AsyncSession, integration_id: UUID, limit: int = 50) -> List[IntegrationEvent]:
        obj = await self.get_integration(db, integration_id)
        return await IntegrationLogger(obj.id, self.session_factory).get_events(limit=limit)

    async def get_team_analytics(self, db: AsyncSession, team_id: str, days: int = 30) -> TeamAnalytics:
        since = utcnow() - timedelta(days=days)
        integrations = await integration_crud.get_by_team(db, team_id=team_id)
        ids = [obj.id for obj in integrations]
        active = sum(1 for obj in integrations if obj.status == IntegrationStatus.ACTIVE)

        counts = await sync_crud.count_by_status(db, integration_ids=ids, since=since)
        total_syncs = sum(counts.values())
        successful = counts.get(SyncStatus.COMPLETED, 0)
        events = await event_crud.recent_for(db, integration_ids=ids, since=since, limit=20)

        return TeamAnalytics(
            total_integrations=len(integrations),
            active_integrations=active,
            inactive_integrations=len(integrations) - active,
            total_syncs=total_syncs,
            successful_syncs=successful,
            failed_syncs=counts.get(SyncStatus.FAILED, 0),
            success_rate=round(successful / total_syncs * 100, 2) if total_syncs else 0.0,
            recent_events=[IntegrationEventResponse.model_validate(event) for event in events],
        )


integration_service = IntegrationService()

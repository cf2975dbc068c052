"""Outbound webhook delivery with durable retry scheduling."""
import asyncio
import logging
import random
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

import httpx
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from examforge.config import settings
from examforge.database import AsyncSessionLocal
from examforge.integrations.base import BaseIntegrationProvider
from examforge.integrations.errors import IntegrationError
from examforge.integrations.signing import SIGNATURE_PREFIX, WebhookSigner, canonical_json
from examforge.middleware.metrics import webhook_deliveries_total, webhook_delivery_duration_seconds
from examforge.models.integration import EventStatus, Integration, IntegrationStatus, SyncStatus
from examforge.models.webhook import DeliveryStatus, WebhookDelivery, WebhookEvent, WebhookRetry
from examforge.schemas.integration import SyncOperation, WebhookConfig
from examforge.schemas.webhook import DeliveryStats, WebhookPayload, WebhookTeam
from examforge.utils.time import isoformat, utcnow

logger = logging.getLogger(__name__)

USER_AGENT = "ExamForge-Webhook/1.0"
MAX_RETRY_DELAY = 300.0  # seconds

# Strong references to in-process retry timers
_retry_timers: Set[asyncio.Task] = set()


class WebhookManager(BaseIntegrationProvider):
    """Deliver signed event payloads to one webhook integration's endpoint."""

    @property
    def config(self) -> WebhookConfig:
        try:
            return WebhookConfig.model_validate(self.integration.config or {})
        except PydanticValidationError as exc:
            raise IntegrationError(f"Invalid webhook configuration: {exc}", "INVALID_CONFIG") from exc

    @property
    def secret(self) -> str:
        secret = (self.integration.credentials or {}).get("secret")
        if not secret:
            raise IntegrationError("Webhook secret is not configured", "INVALID_CONFIG")
        return secret

    async def connect(self) -> bool:
        try:
            if not await self.test_connection():
                raise IntegrationError("Webhook endpoint test delivery failed", "CONNECTION_FAILED")
            await self.update_status(IntegrationStatus.ACTIVE)
            await self.logger.log("webhook_activated", EventStatus.SUCCESS, "Webhook endpoint activated")
            return True
        except Exception as exc:
            await self.handle_error(exc, "connect")
            return False

    async def disconnect(self) -> None:
        await self.update_status(IntegrationStatus.INACTIVE)
        await self.logger.log("webhook_deactivated", EventStatus.SUCCESS, "Webhook endpoint deactivated")

    async def test_connection(self) -> bool:
        payload = WebhookPayload(
            event=WebhookEvent.QUIZ_CREATED.value,
            timestamp=isoformat(utcnow()),
            data={"test": True},
            team=WebhookTeam(id=self.integration.team_id, name="Test Team"),
        )
        try:
            await self.deliver_webhook(payload, is_test=True)
            return True
        except Exception:
            return False

    async def sync(self, operation: SyncOperation) -> SyncOperation:
        # Webhooks are push-only
        result = operation.model_copy(deep=True)
        result.status = SyncStatus.COMPLETED
        result.completed_at = utcnow()
        return result

    async def deliver_webhook(self, payload: WebhookPayload, is_test: bool = False) -> Optional[WebhookDelivery]:
        """Sign, record and POST ``payload``.

        Returns None without side effects when the event is not subscribed.
        A failed send is recorded, a retry is scheduled and the error is re-raised.
        """
        started = time.monotonic()
        try:
            if not is_test:
                if payload.event not in (self.integration.events or []):
                    return None
                if self.integration.status != IntegrationStatus.ACTIVE:
                    raise IntegrationError("Integration is not active", "INACTIVE_INTEGRATION")

            config = self.config
            unsigned = payload.model_dump(exclude={"signature"})
            signature = WebhookSigner.sign(canonical_json(unsigned), self.secret)
            payload.signature = signature
            body = payload.model_dump()

            delivery = await self._create_delivery(body)
            try:
                await self.send_webhook(body, signature, config)
            except Exception as exc:
                await self._update_delivery(delivery.id, DeliveryStatus.FAILED, str(exc))
                webhook_deliveries_total.labels(payload.event, "failed").inc()
                if config.retry_attempts > 0:
                    await self.schedule_retry(delivery.id, 1)
                raise

            await self._update_delivery(delivery.id, DeliveryStatus.DELIVERED)
            webhook_deliveries_total.labels(payload.event, "delivered").inc()
            await self.logger.log(
                "webhook_delivered",
                EventStatus.SUCCESS,
                f"Webhook delivered for event {payload.event}",
                {"delivery_id": str(delivery.id)},
                int((time.monotonic() - started) * 1000),
            )
            return delivery
        except Exception as exc:
            await self.handle_error(exc, "webhook_delivery")
            raise

    async def send_webhook(self, body: Dict[str, Any], signature: str, config: Optional[WebhookConfig] = None) -> None:
        """POST a signed body; raises IntegrationError on transport failure or non-2xx."""
        config = config or self.config
        if not self.integration.delivery_url:
            raise IntegrationError("Webhook delivery URL is not configured", "INVALID_CONFIG")

        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-ExamForge-Event": body["event"],
            "X-ExamForge-Signature": f"{SIGNATURE_PREFIX}{signature}",
            "X-ExamForge-Timestamp": body["timestamp"],
        }
        headers.update(config.custom_headers)
        if config.auth_value:
            if config.auth_type == "bearer":
                headers["Authorization"] = f"Bearer {config.auth_value}"
            elif config.auth_type == "basic":
                headers["Authorization"] = f"Basic {config.auth_value}"

        started = time.monotonic()
        try:
            async with self.http_client(timeout=config.timeout, verify=config.verify_ssl) as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.integration.delivery_url,
                        content=canonical_json(body).encode("utf-8"),
                        headers=headers,
                    ),
                    timeout=config.timeout,
                )
        except asyncio.TimeoutError as exc:
            raise IntegrationError(
                f"Webhook request timed out after {config.timeout}s", "WEBHOOK_REQUEST_FAILED", retryable=True
            ) from exc
        except httpx.HTTPError as exc:
            raise IntegrationError(f"Webhook request failed: {exc!r}", "WEBHOOK_REQUEST_FAILED", retryable=True) from exc
        finally:
            webhook_delivery_duration_seconds.labels(body["event"]).observe(time.monotonic() - started)

        if not response.is_success:
            raise IntegrationError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                "WEBHOOK_HTTP_ERROR",
                retryable=response.status_code >= 500,
                status_code=response.status_code,
            )

    async def retry_webhook(self, delivery_id: UUID, attempt: int) -> None:
        """Resend a stored delivery, reusing its original signature."""
        delivery = await self._get_delivery(delivery_id)
        if delivery is None or delivery.status == DeliveryStatus.DELIVERED:
            return

        config = self.config
        if attempt > config.retry_attempts:
            await self._update_delivery(delivery_id, DeliveryStatus.FAILED, "Max retry attempts exceeded")
            await self.logger.log(
                "webhook_failed",
                EventStatus.ERROR,
                f"Webhook delivery failed after {attempt - 1} retries",
                {"delivery_id": str(delivery_id)},
            )
            return

        started = time.monotonic()
        body = dict(delivery.payload)
        try:
            await self.send_webhook(body, body["signature"], config)
        except Exception as exc:
            await self._update_delivery(delivery_id, DeliveryStatus.FAILED, str(exc))
            webhook_deliveries_total.labels(delivery.event, "failed").inc()
            next_attempt = attempt + 1
            if next_attempt <= config.retry_attempts:
                await self.schedule_retry(delivery_id, next_attempt, self.calculate_retry_delay(next_attempt))
            await self.logger.log(
                "webhook_retry_failed",
                EventStatus.WARNING,
                f"Webhook retry attempt {attempt} failed: {exc}",
                {"delivery_id": str(delivery_id), "attempt": attempt},
            )
            return

        await self._update_delivery(delivery_id, DeliveryStatus.DELIVERED)
        webhook_deliveries_total.labels(delivery.event, "delivered").inc()
        await self.logger.log(
            "webhook_delivered",
            EventStatus.SUCCESS,
            f"Webhook delivered on retry attempt {attempt}",
            {"delivery_id": str(delivery_id), "attempt": attempt},
            int((time.monotonic() - started) * 1000),
        )

    def calculate_retry_delay(self, attempt: int) -> float:
        """Seconds until retry ``attempt``: exponential backoff plus up to 1s jitter, capped at 5 minutes."""
        base = self.config.retry_delay * 2 ** (attempt - 1)
        return min(base + random.random(), MAX_RETRY_DELAY)

    async def schedule_retry(self, delivery_id: UUID, attempt: int, delay: Optional[float] = None) -> WebhookRetry:
        """Persist the retry row; optionally arm an in-process timer as well.

        The row is the durable schedule. ``process_due_retries`` picks up any row
        whose timer never fired.
        """
        if delay is None:
            delay = self.calculate_retry_delay(attempt)

        async with self.session_factory() as db:
            retry = WebhookRetry(
                delivery_id=delivery_id,
                attempt=attempt,
                retry_at=utcnow() + timedelta(seconds=delay),
            )
            db.add(retry)
            await db.commit()

        logger.info("Scheduled webhook retry %s for delivery %s in %.1fs", attempt, delivery_id, delay)
        if settings.WEBHOOK_INPROCESS_RETRIES:
            task = asyncio.get_running_loop().create_task(self._fire_after(retry.id, delay))
            _retry_timers.add(task)
            task.add_done_callback(_retry_timers.discard)
        return retry

    async def _fire_after(self, retry_id: UUID, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            retry = await claim_retry(self.session_factory, retry_id)
            if retry is not None:
                await self.retry_webhook(retry.delivery_id, retry.attempt)
        except Exception:
            logger.exception("In-process webhook retry %s failed", retry_id)

    async def get_delivery_history(self, limit: int = 50) -> List[WebhookDelivery]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(WebhookDelivery)
                .options(selectinload(WebhookDelivery.retries))
                .where(WebhookDelivery.integration_id == self.integration_id)
                .order_by(WebhookDelivery.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_delivery_stats(self, days: int = 7) -> DeliveryStats:
        since = utcnow() - timedelta(days=days)
        async with self.session_factory() as db:
            result = await db.execute(
                select(WebhookDelivery.status, func.count(WebhookDelivery.id))
                .where(
                    WebhookDelivery.integration_id == self.integration_id,
                    WebhookDelivery.created_at >= since,
                )
                .group_by(WebhookDelivery.status)
            )
            counts = {DeliveryStatus(status): count for status, count in result.all()}

        total = sum(counts.values())
        delivered = counts.get(DeliveryStatus.DELIVERED, 0)
        failed = counts.get(DeliveryStatus.FAILED, 0)
        return DeliveryStats(
            total=total,
            delivered=delivered,
            failed=failed,
            pending=total - delivered - failed,
            success_rate=round(delivered / total * 100, 2) if total else 0.0,
        )

    async def _create_delivery(self, body: Dict[str, Any]) -> WebhookDelivery:
        async with self.session_factory() as db:
            delivery = WebhookDelivery(
                integration_id=self.integration_id,
                event=body["event"],
                payload=body,
                url=self.integration.delivery_url,
                status=DeliveryStatus.PENDING,
            )
            db.add(delivery)
            await db.commit()
            return delivery

    async def _get_delivery(self, delivery_id: UUID) -> Optional[WebhookDelivery]:
        async with self.session_factory() as db:
            return await db.get(WebhookDelivery, delivery_id)

    async def _update_delivery(self, delivery_id: UUID, status: DeliveryStatus, error: Optional[str] = None) -> None:
        now = utcnow()
        async with self.session_factory() as db:
            await db.execute(
                update(WebhookDelivery)
                .where(WebhookDelivery.id == delivery_id)
                .values(
                    status=status,
                    error=error,
                    delivered_at=now if status == DeliveryStatus.DELIVERED else None,
                    updated_at=now,
                )
            )
            await db.commit()


async def claim_retry(session_factory, retry_id: UUID) -> Optional[WebhookRetry]:
    """Mark a retry row processed; returns it only for the caller that won the claim."""
    async with session_factory() as db:
        result = await db.execute(
            update(WebhookRetry)
            .where(WebhookRetry.id == retry_id, WebhookRetry.processed_at.is_(None))
            .values(processed_at=utcnow())
        )
        await db.commit()
        if result.rowcount != 1:
            return None
        return await db.get(WebhookRetry, retry_id)


async def process_due_retries(session_factory=None, now=None, transport: Optional[httpx.AsyncBaseTransport] = None) -> int:
    """Run every unclaimed retry whose ``retry_at`` has passed. Returns how many ran."""
    session_factory = session_factory or AsyncSessionLocal
    now = now or utcnow()

    async with session_factory() as db:
        result = await db.execute(
            select(WebhookRetry.id)
            .where(WebhookRetry.processed_at.is_(None), WebhookRetry.retry_at <= now)
            .order_by(WebhookRetry.retry_at)
        )
        retry_ids = list(result.scalars().all())

    processed = 0
    for retry_id in retry_ids:
        retry = await claim_retry(session_factory, retry_id)
        if retry is None:
            continue
        async with session_factory() as db:
            delivery = await db.get(WebhookDelivery, retry.delivery_id)
            integration = await db.get(Integration, delivery.integration_id) if delivery else None
        if integration is None:
            continue
        manager = WebhookManager(integration, session_factory=session_factory, transport=transport)
        try:
            await manager.retry_webhook(retry.delivery_id, retry.attempt)
        except Exception:
            logger.exception("Webhook retry %s for delivery %s failed", retry.attempt, retry.delivery_id)
        processed += 1
    return processed

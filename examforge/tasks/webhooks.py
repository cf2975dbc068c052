"""Celery tasks for webhook delivery."""
import asyncio
import logging

from examforge.integrations.webhook.emitter import WebhookEventEmitter
from examforge.integrations.webhook.manager import process_due_retries
from examforge.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def process_webhook_retries():
    """Fire every scheduled webhook retry that is due (called by Celery Beat)."""
    processed = asyncio.run(process_due_retries())
    if processed:
        logger.info("Processed %d webhook retries", processed)
    return processed


@celery_app.task
def emit_webhook_event(team_id: str, event: str, data: dict, team_name: str = None):
    """Emit an event from a worker process."""
    async def _emit():
        emitter = WebhookEventEmitter()
        await emitter.initialize()
        return await emitter.emit(team_id, event, data, team_name=team_name)

    return asyncio.run(_emit())

"""Celery application and beat schedule."""
from celery import Celery

from examforge.config import settings

celery_app = Celery(
    "examforge",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["examforge.tasks.webhooks", "examforge.tasks.lms"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    beat_schedule={
        "process-due-webhook-retries": {
            "task": "examforge.tasks.webhooks.process_webhook_retries",
            "schedule": float(settings.WEBHOOK_RETRY_POLL_SECONDS),
        },
        "lms-auto-sync": {
            "task": "examforge.tasks.lms.run_lms_auto_sync",
            "schedule": float(settings.LMS_AUTOSYNC_POLL_SECONDS),
        },
    },
)

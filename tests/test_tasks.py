"""Tests for scheduled LMS sync and the Celery schedule."""
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from conftest import RecordingTransport, classroom_api
from examforge.integrations.webhook.emitter import WebhookEventEmitter
from examforge.models.integration import (
    Integration,
    IntegrationStatus,
    IntegrationType,
    SyncOperationRecord,
    SyncStatus,
    SyncType,
)
from examforge.schemas.integration import LMSConfig
from examforge.services.integration_service import IntegrationService
from examforge.tasks.celery_app import celery_app
from examforge.tasks.lms import is_sync_due, run_due_syncs, sync_types_for
from examforge.utils.time import utcnow


def test_sync_types_follow_config():
    assert sync_types_for(LMSConfig()) == [SyncType.COURSES, SyncType.ROSTER, SyncType.ASSIGNMENTS]
    assert sync_types_for(LMSConfig(sync_rosters=False, sync_assignments=False, sync_grades=True)) == [
        SyncType.COURSES,
        SyncType.GRADES,
    ]


def test_is_sync_due():
    now = utcnow()
    config = LMSConfig(auto_sync=True, sync_interval=60)

    assert is_sync_due(Integration(last_sync_at=None), config, now)
    assert not is_sync_due(Integration(last_sync_at=now - timedelta(minutes=30)), config, now)
    assert is_sync_due(Integration(last_sync_at=now - timedelta(minutes=61)), config, now)
    # SQLite hands back naive datetimes
    assert is_sync_due(Integration(last_sync_at=(now - timedelta(hours=2)).replace(tzinfo=None)), config, now)
    assert not is_sync_due(Integration(last_sync_at=None), LMSConfig(auto_sync=False), now)


@pytest.mark.asyncio
async def test_run_due_syncs_only_syncs_due_integrations(session_factory, make_integration, classroom_integration):
    await make_integration(
        type=IntegrationType.LMS,
        provider="google-classroom",
        credentials={"access_token": "tok"},
        config={"auto_sync": False},
    )
    await make_integration(
        type=IntegrationType.LMS,
        provider="google-classroom",
        credentials={"access_token": "tok"},
        config={"auto_sync": True, "sync_interval": 60},
        last_sync_at=utcnow() - timedelta(minutes=5),
    )
    transport = RecordingTransport(handler=classroom_api())
    service = IntegrationService(
        session_factory=session_factory,
        emitter=WebhookEventEmitter(session_factory=session_factory, transport=transport),
        transport=transport,
    )

    assert await run_due_syncs(session_factory, service=service) == 1

    async with session_factory() as session:
        records = (await session.execute(select(SyncOperationRecord))).scalars().all()
        assert {record.integration_id for record in records} == {classroom_integration.id}
        assert sorted(record.type.value for record in records) == ["assignments", "courses", "roster"]
        assert all(record.status == SyncStatus.COMPLETED for record in records)

        stored = await session.get(Integration, classroom_integration.id)
        assert stored.last_sync_at is not None

    # Nothing is due right after a pass
    assert await run_due_syncs(session_factory, service=service) == 0


def test_beat_schedule_registers_periodic_tasks():
    schedule = celery_app.conf.beat_schedule

    assert schedule["process-due-webhook-retries"]["task"] == "examforge.tasks.webhooks.process_webhook_retries"
    assert schedule["lms-auto-sync"]["task"] == "examforge.tasks.lms.run_lms_auto_sync"


@pytest.mark.asyncio
async def test_run_due_syncs_continues_past_revoked_token(session_factory, make_integration, classroom_integration):
    revoked = await make_integration(
        name="Revoked Classroom",
        type=IntegrationType.LMS,
        provider="google-classroom",
        credentials={"access_token": "revoked-token"},
        config={"auto_sync": True},
        events=[],
        delivery_url=None,
    )
    classroom = classroom_api()

    def handler(request):
        if request.headers["Authorization"] == "Bearer revoked-token":
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid credentials"}})
        return classroom(request)

    transport = RecordingTransport(handler=handler)
    service = IntegrationService(
        session_factory=session_factory,
        emitter=WebhookEventEmitter(session_factory=session_factory, transport=transport),
        transport=transport,
    )

    assert await run_due_syncs(session_factory, service=service) == 1

    async with session_factory() as session:
        records = (await session.execute(select(SyncOperationRecord))).scalars().all()
        healthy = [record for record in records if record.integration_id == classroom_integration.id]
        broken = [record for record in records if record.integration_id == revoked.id]

        assert sorted(record.type.value for record in healthy) == ["assignments", "courses", "roster"]
        assert all(record.status == SyncStatus.COMPLETED for record in healthy)
        # Stops after the first failed pass
        assert [(record.type, record.status) for record in broken] == [(SyncType.COURSES, SyncStatus.FAILED)]

        stored = await session.get(Integration, revoked.id)
        assert stored.status == IntegrationStatus.ERROR


@pytest.mark.asyncio
async def test_run_due_syncs_isolates_unexpected_errors(session_factory, make_integration, classroom_integration):
    failing = await make_integration(
        name="Failing Classroom",
        type=IntegrationType.LMS,
        provider="google-classroom",
        credentials={"access_token": "tok"},
        config={"auto_sync": True},
        events=[],
        delivery_url=None,
    )
    transport = RecordingTransport(handler=classroom_api())
    service = IntegrationService(
        session_factory=session_factory,
        emitter=WebhookEventEmitter(session_factory=session_factory, transport=transport),
        transport=transport,
    )
    real_sync = service.sync_integration

    async def sync_integration(db, integration_id, request):
        if integration_id == failing.id:
            raise RuntimeError("database went away")
        return await real_sync(db, integration_id, request)

    service.sync_integration = sync_integration

    assert await run_due_syncs(session_factory, service=service) == 1

    async with session_factory() as session:
        records = (await session.execute(select(SyncOperationRecord))).scalars().all()
        assert {record.integration_id for record in records} == {classroom_integration.id}

"""Tests for shared provider lifecycle behaviour."""
import pytest

from examforge.integrations.base import BaseIntegrationProvider
from examforge.integrations.errors import IntegrationError
from examforge.integrations.logger import list_events
from examforge.integrations.registry import get_provider
from examforge.integrations.lms.google_classroom import GoogleClassroomProvider
from examforge.integrations.webhook.manager import WebhookManager
from examforge.models.integration import Integration, IntegrationStatus, IntegrationType, SyncStatus
from examforge.schemas.integration import SyncOperation


class StubProvider(BaseIntegrationProvider):
    """Provider whose connection test result is fixed."""

    connection_ok = True

    async def connect(self) -> bool:
        await self.update_status(IntegrationStatus.ACTIVE)
        return True

    async def disconnect(self) -> None:
        await self.update_status(IntegrationStatus.INACTIVE)

    async def test_connection(self) -> bool:
        return self.connection_ok

    async def sync(self, operation: SyncOperation) -> SyncOperation:
        operation.status = SyncStatus.COMPLETED
        return operation


async def event_types(db_session, integration_id):
    return [event.type for event in await list_events(db_session, integration_id)]


@pytest.mark.asyncio
async def test_handle_error_flags_auth_failures(db_session, session_factory, make_integration):
    """An unauthorized error moves the integration to error and logs auth_failed."""
    integration = await make_integration()
    provider = StubProvider(integration, session_factory=session_factory)

    await provider.handle_error(IntegrationError("HTTP 401: Unauthorized", "HTTP_ERROR"), "sync_roster")

    assert provider.integration.status == IntegrationStatus.ERROR
    async with session_factory() as session:
        stored = await session.get(Integration, integration.id)
        assert stored.status == IntegrationStatus.ERROR

    types = await event_types(db_session, integration.id)
    assert "error" in types
    assert "auth_failed" in types
    assert "status_changed" in types


@pytest.mark.asyncio
async def test_handle_error_keeps_status_for_transient_failures(db_session, session_factory, make_integration):
    integration = await make_integration()
    provider = StubProvider(integration, session_factory=session_factory)

    await provider.handle_error(TimeoutError("Request timed out"), "sync_roster")

    assert provider.integration.status == IntegrationStatus.ACTIVE
    events = await list_events(db_session, integration.id)
    assert [event.type for event in events] == ["error"]
    assert events[0].message == "sync_roster: Request timed out"
    assert "TimeoutError" in events[0].data["error"]


def test_is_auth_error_patterns():
    assert BaseIntegrationProvider.is_auth_error(Exception("Access Denied for user"))
    assert BaseIntegrationProvider.is_auth_error(Exception("invalid_token"))
    assert not BaseIntegrationProvider.is_auth_error(Exception("HTTP 503: Service Unavailable"))


@pytest.mark.asyncio
async def test_validate_connection_requires_active_status(session_factory, make_integration):
    integration = await make_integration(status=IntegrationStatus.PENDING)
    provider = StubProvider(integration, session_factory=session_factory)

    with pytest.raises(IntegrationError) as exc_info:
        await provider.validate_connection()
    assert exc_info.value.code == "INACTIVE_INTEGRATION"


@pytest.mark.asyncio
async def test_validate_connection_failed_test_sets_error(session_factory, make_integration):
    integration = await make_integration()
    provider = StubProvider(integration, session_factory=session_factory)
    provider.connection_ok = False

    with pytest.raises(IntegrationError) as exc_info:
        await provider.validate_connection()

    assert exc_info.value.code == "CONNECTION_FAILED"
    assert provider.integration.status == IntegrationStatus.ERROR


@pytest.mark.asyncio
async def test_update_credentials_persists_and_returns_copies(session_factory, make_integration):
    integration = await make_integration()
    provider = StubProvider(integration, session_factory=session_factory)

    await provider.update_credentials({"secret": "rotated"})
    credentials = await provider.get_decrypted_credentials()
    credentials["secret"] = "mutated"

    assert (await provider.get_decrypted_credentials()) == {"secret": "rotated"}
    async with session_factory() as session:
        stored = await session.get(Integration, integration.id)
        assert stored.credentials == {"secret": "rotated"}


@pytest.mark.asyncio
async def test_update_on_deleted_integration_raises(db_session, session_factory, make_integration):
    integration = await make_integration()
    provider = StubProvider(integration, session_factory=session_factory)
    await db_session.delete(integration)
    await db_session.commit()

    with pytest.raises(IntegrationError) as exc_info:
        await provider.update_last_sync()
    assert exc_info.value.code == "INTEGRATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_get_provider_resolves_by_type_and_provider(session_factory, make_integration):
    webhook = await make_integration()
    classroom = await make_integration(type=IntegrationType.LMS, provider="google-classroom")
    canvas = await make_integration(type=IntegrationType.LMS, provider="canvas")

    assert isinstance(get_provider(webhook, session_factory), WebhookManager)
    assert isinstance(get_provider(classroom, session_factory), GoogleClassroomProvider)
    with pytest.raises(IntegrationError) as exc_info:
        get_provider(canvas, session_factory)
    assert exc_info.value.code == "UNSUPPORTED_PROVIDER"

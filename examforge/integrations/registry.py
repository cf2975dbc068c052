"""Provider lookup by integration type and provider name."""
from typing import Dict, Optional, Tuple, Type

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from examforge.integrations.base import BaseIntegrationProvider
from examforge.integrations.errors import IntegrationError
from examforge.integrations.lms.google_classroom import GoogleClassroomProvider
from examforge.integrations.webhook.manager import WebhookManager
from examforge.models.integration import Integration, IntegrationType

# (type, provider) -> class; provider None matches any provider of that type
PROVIDERS: Dict[Tuple[IntegrationType, Optional[str]], Type[BaseIntegrationProvider]] = {
    (IntegrationType.WEBHOOK, None): WebhookManager,
    (IntegrationType.LMS, "google-classroom"): GoogleClassroomProvider,
}


def get_provider(
    integration: Integration,
    session_factory: Optional[async_sessionmaker] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseIntegrationProvider:
    integration_type = IntegrationType(integration.type)
    provider_cls = PROVIDERS.get((integration_type, integration.provider)) or PROVIDERS.get((integration_type, None))
    if provider_cls is None:
        raise IntegrationError(
            f"No provider available for {integration_type.value}/{integration.provider}",
            "UNSUPPORTED_PROVIDER",
        )
    return provider_cls(integration, session_factory=session_factory, transport=transport)

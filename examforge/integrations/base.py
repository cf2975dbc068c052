"""Base class for external-system integration providers."""
import logging
import traceback
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from examforge.database import AsyncSessionLocal
from examforge.integrations.errors import IntegrationError
from examforge.integrations.logger import IntegrationLogger
from examforge.models.integration import EventStatus, Integration, IntegrationStatus
from examforge.schemas.integration import SyncOperation
from examforge.utils.time import utcnow

logger = logging.getLogger(__name__)

AUTH_ERROR_PATTERNS = (
    "unauthorized",
    "invalid_token",
    "expired_token",
    "authentication failed",
    "access denied",
)


class BaseIntegrationProvider(ABC):
    """Lifecycle, status and credential handling shared by every provider.

    Subclasses implement ``connect``, ``disconnect``, ``test_connection`` and
    ``sync``. Persistence goes through ``session_factory`` and outbound HTTP
    through ``transport`` so both can be swapped in tests.
    """

    def __init__(
        self,
        integration: Integration,
        session_factory: Optional[async_sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        event_logger: Optional[IntegrationLogger] = None,
    ):
        self.integration = integration
        self.session_factory = session_factory or AsyncSessionLocal
        self.transport = transport
        self.logger = event_logger or IntegrationLogger(integration.id, self.session_factory)

    @property
    def integration_id(self):
        return self.integration.id

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connectivity and end in ``active`` on success."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down and end in ``inactive``."""

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check connectivity without side effects."""

    @abstractmethod
    async def sync(self, operation: SyncOperation) -> SyncOperation:
        """Run one sync pass."""

    def http_client(self, timeout: float, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=timeout, **kwargs)

    async def _update_integration(self, **fields: Any) -> None:
        async with self.session_factory() as db:
            db_obj = await db.get(Integration, self.integration.id)
            if db_obj is None:
                raise IntegrationError(f"Integration {self.integration.id} not found", "INTEGRATION_NOT_FOUND")
            for field, value in fields.items():
                setattr(db_obj, field, value)
            await db.commit()
        for field, value in fields.items():
            setattr(self.integration, field, value)

    async def update_status(self, status: IntegrationStatus) -> None:
        status = IntegrationStatus(status)
        await self._update_integration(status=status, updated_at=utcnow())
        await self.logger.log("status_changed", EventStatus.INFO, f"Status changed to {status.value}")

    async def update_last_sync(self) -> None:
        await self._update_integration(last_sync_at=utcnow())

    async def update_credentials(self, credentials: Dict[str, Any]) -> None:
        """Persist credentials; the column encrypts them at rest."""
        await self._update_integration(credentials=dict(credentials), updated_at=utcnow())

    async def get_decrypted_credentials(self) -> Dict[str, Any]:
        return dict(self.integration.credentials or {})

    async def validate_connection(self) -> None:
        """Pre-flight for sync and delivery: require ``active`` and a passing connection test."""
        if self.integration.status != IntegrationStatus.ACTIVE:
            raise IntegrationError("Integration is not active", "INACTIVE_INTEGRATION")

        if not await self.test_connection():
            await self.update_status(IntegrationStatus.ERROR)
            raise IntegrationError("Connection test failed", "CONNECTION_FAILED")

    async def handle_error(self, error: BaseException, operation: Optional[str] = None) -> None:
        """Log ``error`` and flip to ``error`` status when it looks like a credential failure."""
        message = f"{operation}: {error}" if operation else str(error)
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await self.logger.log("error", EventStatus.ERROR, message, {"error": stack})

        if self.is_auth_error(error):
            await self.update_status(IntegrationStatus.ERROR)
            await self.logger.log(
                "auth_failed",
                EventStatus.ERROR,
                "Authentication failed - credentials may need renewal",
            )

    @staticmethod
    def is_auth_error(error: BaseException) -> bool:
        message = str(error).lower()
        return any(pattern in message for pattern in AUTH_ERROR_PATTERNS)

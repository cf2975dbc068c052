"""Schema modules."""
from examforge.schemas.integration import (
    ConnectionResult,
    IntegrationCreate,
    IntegrationCreatedResponse,
    IntegrationEventResponse,
    IntegrationResponse,
    IntegrationUpdate,
    LMSConfig,
    SyncError,
    SyncOperation,
    SyncRequest,
    TeamAnalytics,
    WebhookConfig,
)
from examforge.schemas.webhook import (
    DeliveryStats,
    EmitRequest,
    WebhookDeliveryResponse,
    WebhookPayload,
    WebhookTeam,
)
from examforge.schemas.lms import GradePassback, LMSAssignment, LMSCourse, LMSUser

__all__ = [
    "ConnectionResult",
    "IntegrationCreate",
    "IntegrationCreatedResponse",
    "IntegrationEventResponse",
    "IntegrationResponse",
    "IntegrationUpdate",
    "LMSConfig",
    "SyncError",
    "SyncOperation",
    "SyncRequest",
    "TeamAnalytics",
    "WebhookConfig",
    "DeliveryStats",
    "EmitRequest",
    "WebhookDeliveryResponse",
    "WebhookPayload",
    "WebhookTeam",
    "GradePassback",
    "LMSAssignment",
    "LMSCourse",
    "LMSUser",
]

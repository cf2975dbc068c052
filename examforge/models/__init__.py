"""Model modules."""
from examforge.models.integration import (
    EventStatus,
    Integration,
    IntegrationEvent,
    IntegrationStatus,
    IntegrationType,
    SyncDirection,
    SyncOperationRecord,
    SyncStatus,
    SyncType,
)
from examforge.models.webhook import DeliveryStatus, WebhookDelivery, WebhookEvent, WebhookRetry
from examforge.models.lms import (
    LMSAssignmentRecord,
    LMSCourseRecord,
    LMSEnrollmentRecord,
    LMSUserRecord,
)

__all__ = [
    "EventStatus",
    "Integration",
    "IntegrationEvent",
    "IntegrationStatus",
    "IntegrationType",
    "SyncDirection",
    "SyncOperationRecord",
    "SyncStatus",
    "SyncType",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookEvent",
    "WebhookRetry",
    "LMSAssignmentRecord",
    "LMSCourseRecord",
    "LMSEnrollmentRecord",
    "LMSUserRecord",
]

"""Pydantic schemas for API request/response models."""

from ackportal.schemas.ack import AckCreate, AckResponse, AcknowledgedIds
from ackportal.schemas.batch import (
    BatchCreate,
    BatchRead,
    BusinessCreate,
    BusinessRead,
    DocumentCreate,
    DocumentRead,
    ProgressRead,
    RecipientCreate,
    RecipientRead,
)
from ackportal.schemas.notification import (
    AssignmentNotifyRequest,
    DispatchSummary,
    MilestoneRead,
    NotificationEmailsRead,
    NotificationEmailsUpdate,
)

__all__ = [
    # Acknowledgements
    "AckCreate",
    "AckResponse",
    "AcknowledgedIds",
    # Batches
    "BatchCreate",
    "BatchRead",
    "BusinessCreate",
    "BusinessRead",
    "DocumentCreate",
    "DocumentRead",
    "ProgressRead",
    "RecipientCreate",
    "RecipientRead",
    # Notifications
    "AssignmentNotifyRequest",
    "DispatchSummary",
    "MilestoneRead",
    "NotificationEmailsRead",
    "NotificationEmailsUpdate",
]

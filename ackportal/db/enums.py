"""Enums shared by models, schemas and services."""

from enum import Enum


class BatchStatus(str, Enum):
    """Whether a batch is currently assigned to recipients."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class DocumentSource(str, Enum):
    """Optional storage hint recorded when a document is attached."""

    LOCAL = "local"
    SHAREPOINT = "sharepoint"


class MilestoneKind(str, Enum):
    """Completion milestones that trigger an admin notification."""

    USER_COMPLETED = "user_completed"
    BATCH_COMPLETED = "batch_completed"


class MilestoneState(str, Enum):
    """
    Milestone lifecycle. Transitions only move forward:
    not_started -> in_progress -> completed -> notified.
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NOTIFIED = "notified"

    @property
    def rank(self) -> int:
        return _MILESTONE_STATE_ORDER.index(self)


_MILESTONE_STATE_ORDER = [
    MilestoneState.NOT_STARTED,
    MilestoneState.IN_PROGRESS,
    MilestoneState.COMPLETED,
    MilestoneState.NOTIFIED,
]


class DispatchStatus(str, Enum):
    """Outcome of sending a notification (all physical messages)."""

    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


# Batch-level milestones have no subject user; the empty string keeps the
# (batch_id, kind, subject_email) unique constraint effective.
BATCH_SUBJECT = ""

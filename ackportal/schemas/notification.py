"""Pydantic schemas for notification settings, milestones and dispatch results."""

from datetime import datetime

from pydantic import BaseModel, EmailStr


class NotificationEmailsUpdate(BaseModel):
    """Replace the administrator notification list."""
    emails: list[EmailStr]


class NotificationEmailsRead(BaseModel):
    emails: list[str]


class MilestoneRead(BaseModel):
    id: int
    batch_id: int
    kind: str
    subject_email: str
    state: str
    completed_at: datetime | None
    notified_at: datetime | None
    dispatch_status: str | None
    last_error: str | None

    model_config = {"from_attributes": True}


class AssignmentNotifyRequest(BaseModel):
    """Optional subset of recipients; all recipients when omitted."""
    emails: list[EmailStr] | None = None


class DispatchSummary(BaseModel):
    attempted: int
    sent: int
    failed: int
    status: str

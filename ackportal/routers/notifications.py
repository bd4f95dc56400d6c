"""Notification settings Router - administrator recipient list."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ackportal.core.deps import get_db
from ackportal.schemas import NotificationEmailsRead, NotificationEmailsUpdate
from ackportal.services import notification_email_service

router = APIRouter(prefix="/notification-emails", tags=["notifications"])


@router.get("", response_model=NotificationEmailsRead)
def get_notification_emails(db: Session = Depends(get_db)):
    return NotificationEmailsRead(emails=notification_email_service.list_notification_emails(db))


@router.post("", response_model=NotificationEmailsRead)
def set_notification_emails(data: NotificationEmailsUpdate, db: Session = Depends(get_db)):
    """Replace the list of addresses that receive completion notifications."""
    emails = notification_email_service.replace_notification_emails(
        db, [str(e) for e in data.emails]
    )
    return NotificationEmailsRead(emails=emails)

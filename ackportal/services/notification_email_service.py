"""Administrator notification address list."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ackportal.core.config import settings
from ackportal.db.models import NotificationEmail
from ackportal.services.batch_service import normalize_email

logger = logging.getLogger(__name__)


def list_notification_emails(db: Session) -> list[str]:
    return list(
        db.execute(select(NotificationEmail.email).order_by(NotificationEmail.id)).scalars()
    )


def replace_notification_emails(db: Session, emails: list[str]) -> list[str]:
    """Replace the stored list. Entries are lower-cased, de-duplicated, order kept."""
    cleaned: list[str] = []
    for raw in emails:
        email = normalize_email(raw)
        if email and "@" in email and email not in cleaned:
            cleaned.append(email)

    db.execute(delete(NotificationEmail))
    for email in cleaned:
        db.add(NotificationEmail(email=email))
    db.commit()
    logger.info("Notification email list updated (%s addresses)", len(cleaned))
    return cleaned


def add_notification_email(db: Session, email: str) -> list[str]:
    current = list_notification_emails(db)
    return replace_notification_emails(db, current + [email])


def admin_recipients(db: Session) -> list[str]:
    """Stored admin addresses, or the configured fallback list when none are stored."""
    stored = list_notification_emails(db)
    if stored:
        return stored
    return settings.admin_notification_emails_list

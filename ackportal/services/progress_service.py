"""Batch progress and completion detection.

Both completion predicates are recomputed from counts on every call; they
are level-triggered. Deciding whether a completion is *new* belongs to the
milestone ledger, not to this module.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ackportal.db.models import Acknowledgement, Document, Recipient
from ackportal.services.batch_service import normalize_email


@dataclass(frozen=True)
class Progress:
    acknowledged: int
    total: int
    percent: int

    def as_dict(self) -> dict[str, int]:
        return {"acknowledged": self.acknowledged, "total": self.total, "percent": self.percent}


def _percent(acknowledged: int, total: int) -> int:
    if total == 0:
        return 0
    return int(round(acknowledged / total * 100))


def count_documents(db: Session, batch_id: int) -> int:
    return db.execute(
        select(func.count(Document.id)).where(Document.batch_id == batch_id)
    ).scalar_one()


def count_acknowledgements(db: Session, batch_id: int, email: str | None = None) -> int:
    # Joined to documents so acks for documents removed from the batch never count
    stmt = (
        select(func.count(Acknowledgement.id))
        .join(Document, Document.id == Acknowledgement.document_id)
        .where(
            Acknowledgement.batch_id == batch_id,
            Document.batch_id == batch_id,
            Acknowledgement.acknowledged.is_(True),
        )
    )
    if email is not None:
        stmt = stmt.where(Acknowledgement.email == normalize_email(email))
    return db.execute(stmt).scalar_one()


def get_progress(db: Session, batch_id: int, email: str | None = None) -> Progress:
    """
    Progress for a batch, optionally for one recipient.

    percent is round(acknowledged / total * 100) and 0 when the batch has
    no documents.
    """
    total = count_documents(db, batch_id)
    acknowledged = count_acknowledgements(db, batch_id, email)
    if email is not None:
        acknowledged = min(acknowledged, total)
    return Progress(acknowledged=acknowledged, total=total, percent=_percent(acknowledged, total))


def user_completed(db: Session, batch_id: int, email: str) -> bool:
    """True iff the user acknowledged every document and the batch has documents."""
    progress = get_progress(db, batch_id, email)
    return progress.total > 0 and progress.acknowledged >= progress.total


def recipient_emails(db: Session, batch_id: int) -> list[str]:
    """Unique, non-empty, lower-cased recipient emails in first-seen order."""
    rows = db.execute(
        select(Recipient.email).where(Recipient.batch_id == batch_id).order_by(Recipient.id)
    ).scalars()
    emails: list[str] = []
    seen: set[str] = set()
    for raw in rows:
        email = normalize_email(raw)
        if email and email not in seen:
            seen.add(email)
            emails.append(email)
    return emails


def completed_recipient_emails(db: Session, batch_id: int) -> list[str]:
    return [e for e in recipient_emails(db, batch_id) if user_completed(db, batch_id, e)]


def batch_completed(db: Session, batch_id: int) -> bool:
    """
    True iff the batch has documents and recipients and every recipient
    completed it. Never vacuously true.
    """
    emails = recipient_emails(db, batch_id)
    if not emails:
        return False
    if count_documents(db, batch_id) == 0:
        return False
    return all(user_completed(db, batch_id, email) for email in emails)

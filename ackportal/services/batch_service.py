"""Batch, document, recipient and business persistence."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from ackportal.db.enums import BatchStatus
from ackportal.db.models import Batch, Business, Document, Recipient

logger = logging.getLogger(__name__)


class BatchNotFoundError(Exception):
    """Raised when a batch id does not exist."""


class DocumentNotFoundError(Exception):
    """Raised when a document id does not exist in the given batch."""


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


# =============================================================================
# Batches
# =============================================================================


def get_batch(db: Session, batch_id: int) -> Batch | None:
    return db.get(Batch, batch_id)


def require_batch(db: Session, batch_id: int) -> Batch:
    batch = get_batch(db, batch_id)
    if not batch:
        raise BatchNotFoundError(f"Batch {batch_id} not found")
    return batch


def list_batches(db: Session, *, status: str | None = None) -> list[Batch]:
    stmt = select(Batch).order_by(Batch.id.desc())
    if status:
        stmt = stmt.where(Batch.status == status)
    return list(db.execute(stmt).scalars().all())


def create_batch(
    db: Session,
    *,
    name: str,
    start_date: date | None = None,
    due_date: date | None = None,
    description: str | None = None,
    status: str = BatchStatus.ACTIVE.value,
) -> Batch:
    """Create a batch. Documents and recipients are attached separately."""
    batch = Batch(
        name=name.strip(),
        start_date=start_date,
        due_date=due_date,
        description=description.strip() if description else None,
        status=status,
    )
    db.add(batch)
    db.commit()
    db.refresh(batch)
    logger.info("Created batch %s", batch.id)
    return batch


def delete_batch(db: Session, batch_id: int) -> None:
    batch = require_batch(db, batch_id)
    db.delete(batch)
    db.commit()
    logger.info("Deleted batch %s", batch_id)


# =============================================================================
# Documents
# =============================================================================


def list_documents(db: Session, batch_id: int) -> list[Document]:
    return list(
        db.execute(
            select(Document).where(Document.batch_id == batch_id).order_by(Document.id)
        )
        .scalars()
        .all()
    )


def get_document(db: Session, batch_id: int, document_id: int) -> Document:
    document = db.get(Document, document_id)
    if not document or document.batch_id != batch_id:
        raise DocumentNotFoundError(f"Document {document_id} not found in batch {batch_id}")
    return document


def add_documents(db: Session, batch_id: int, documents: list[dict]) -> list[Document]:
    """Attach documents to a batch. Each dict carries Document column values."""
    require_batch(db, batch_id)
    created = []
    for data in documents:
        document = Document(
            batch_id=batch_id,
            title=data["title"].strip(),
            url=(data.get("url") or "").strip() or None,
            drive_id=data.get("drive_id") or None,
            item_id=data.get("item_id") or None,
            source=data.get("source") or None,
            version=data.get("version") or 1,
            requires_signature=bool(data.get("requires_signature", False)),
        )
        db.add(document)
        created.append(document)
    db.commit()
    for document in created:
        db.refresh(document)
    return created


# =============================================================================
# Recipients
# =============================================================================


def list_recipients(db: Session, batch_id: int) -> list[Recipient]:
    return list(
        db.execute(
            select(Recipient).where(Recipient.batch_id == batch_id).order_by(Recipient.id)
        )
        .scalars()
        .all()
    )


def get_recipient(db: Session, batch_id: int, email: str) -> Recipient | None:
    return db.execute(
        select(Recipient).where(
            Recipient.batch_id == batch_id,
            Recipient.email == normalize_email(email),
        )
    ).scalar_one_or_none()


def add_recipients(db: Session, batch_id: int, recipients: list[dict]) -> list[Recipient]:
    """
    Attach recipients to a batch.

    Emails are unique per batch (case-insensitive); rows for an email that is
    already a recipient, or repeated within the payload, are skipped.
    """
    require_batch(db, batch_id)
    seen = {r.email for r in list_recipients(db, batch_id)}
    created = []
    for data in recipients:
        email = normalize_email(data.get("email"))
        if not email or email in seen:
            continue
        seen.add(email)
        recipient = Recipient(
            batch_id=batch_id,
            email=email,
            user_principal=data.get("user_principal") or email,
            display_name=data.get("display_name"),
            business_id=data.get("business_id"),
            department=data.get("department"),
            job_title=data.get("job_title"),
            location=data.get("location"),
            primary_group=data.get("primary_group"),
        )
        db.add(recipient)
        created.append(recipient)
    db.commit()
    for recipient in created:
        db.refresh(recipient)
    return created


# =============================================================================
# Businesses
# =============================================================================


def list_businesses(db: Session) -> list[Business]:
    return list(db.execute(select(Business).order_by(Business.name)).scalars().all())


def business_name_map(db: Session) -> dict[int, str]:
    """Business id -> name lookup used for report enrichment."""
    return {b.id: b.name for b in list_businesses(db)}


def create_business(
    db: Session,
    *,
    name: str,
    code: str | None = None,
    description: str | None = None,
    is_active: bool = True,
) -> Business:
    business = Business(
        name=name.strip(),
        code=code.strip() if code else None,
        description=description,
        is_active=is_active,
    )
    db.add(business)
    db.commit()
    db.refresh(business)
    return business

"""Acknowledgement recording.

Writes are idempotent per (batch, document, email): re-submitting the same
acknowledgement overwrites the existing row instead of adding another.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ackportal.core.structured_logging import mask_email
from ackportal.db.models import Acknowledgement
from ackportal.services import batch_service, progress_events
from ackportal.services.batch_service import normalize_email

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _find(db: Session, batch_id: int, document_id: int, email: str) -> Acknowledgement | None:
    return db.execute(
        select(Acknowledgement).where(
            Acknowledgement.batch_id == batch_id,
            Acknowledgement.document_id == document_id,
            Acknowledgement.email == email,
        )
    ).scalar_one_or_none()


def record_acknowledgement(
    db: Session,
    *,
    batch_id: int,
    document_id: int,
    email: str,
) -> Acknowledgement:
    """
    Upsert an acknowledgement and emit a progress event.

    Raises:
        ValueError: email is empty
        BatchNotFoundError: batch does not exist
        DocumentNotFoundError: document is not part of the batch
    """
    email = normalize_email(email)
    if not email:
        raise ValueError("email is required")

    batch_service.require_batch(db, batch_id)
    batch_service.get_document(db, batch_id, document_id)

    now = _now_utc()
    ack = _find(db, batch_id, document_id, email)
    if ack:
        ack.acknowledged = True
        ack.ack_date = now
        db.commit()
    else:
        ack = Acknowledgement(
            batch_id=batch_id,
            document_id=document_id,
            email=email,
            acknowledged=True,
            ack_date=now,
        )
        try:
            db.add(ack)
            db.commit()
        except IntegrityError:
            # A concurrent submission inserted the same triple first
            db.rollback()
            ack = _find(db, batch_id, document_id, email)
            if ack is None:
                raise
            ack.acknowledged = True
            ack.ack_date = now
            db.commit()

    db.refresh(ack)
    logger.info(
        "Acknowledgement recorded batch=%s document=%s email=%s",
        batch_id,
        document_id,
        mask_email(email),
    )
    progress_events.emit(
        progress_events.ProgressChanged(batch_id=batch_id, document_id=document_id, email=email)
    )
    return ack


def list_acknowledged_document_ids(db: Session, batch_id: int, email: str) -> list[int]:
    """Document ids the user has acknowledged in the batch."""
    rows = db.execute(
        select(Acknowledgement.document_id)
        .where(
            Acknowledgement.batch_id == batch_id,
            Acknowledgement.email == normalize_email(email),
            Acknowledgement.acknowledged.is_(True),
        )
        .order_by(Acknowledgement.document_id)
    ).scalars()
    return list(rows)


def last_acknowledged_at(db: Session, batch_id: int, email: str) -> datetime | None:
    """Most recent acknowledgement timestamp for a user in a batch."""
    acks = db.execute(
        select(Acknowledgement.ack_date).where(
            Acknowledgement.batch_id == batch_id,
            Acknowledgement.email == normalize_email(email),
            Acknowledgement.acknowledged.is_(True),
        )
    ).scalars()
    dates = [d for d in acks if d is not None]
    return max(dates) if dates else None

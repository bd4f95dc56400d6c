"""Notification milestone ledger.

Rows in notification_milestones are both the idempotency marker and the
explicit per-user / per-batch completion state. Because the ledger lives in
the shared database, concurrent pipeline runs contend on the same row:
claim_for_dispatch() is a single compare-and-set UPDATE, so exactly one run
wins the right to send a given milestone notification.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ackportal.db.enums import BATCH_SUBJECT, DispatchStatus, MilestoneKind, MilestoneState
from ackportal.db.models import NotificationMilestone

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_milestone(
    db: Session,
    batch_id: int,
    kind: MilestoneKind,
    subject_email: str = BATCH_SUBJECT,
) -> NotificationMilestone | None:
    return db.execute(
        select(NotificationMilestone).where(
            NotificationMilestone.batch_id == batch_id,
            NotificationMilestone.kind == kind.value,
            NotificationMilestone.subject_email == subject_email,
        )
    ).scalar_one_or_none()


def list_milestones(db: Session, batch_id: int) -> list[NotificationMilestone]:
    return list(
        db.execute(
            select(NotificationMilestone)
            .where(NotificationMilestone.batch_id == batch_id)
            .order_by(NotificationMilestone.id)
        )
        .scalars()
        .all()
    )


def is_notified(
    db: Session,
    batch_id: int,
    kind: MilestoneKind,
    subject_email: str = BATCH_SUBJECT,
) -> bool:
    milestone = get_milestone(db, batch_id, kind, subject_email)
    return bool(milestone and milestone.state == MilestoneState.NOTIFIED.value)


def _advance(milestone: NotificationMilestone, state: MilestoneState) -> bool:
    """Move the in-memory row forward; returns True when the state changed."""
    current = MilestoneState(milestone.state)
    if state.rank <= current.rank:
        return False
    milestone.state = state.value
    if state == MilestoneState.COMPLETED and milestone.completed_at is None:
        milestone.completed_at = _now_utc()
    return True


def sync_milestone(
    db: Session,
    *,
    batch_id: int,
    kind: MilestoneKind,
    state: MilestoneState,
    subject_email: str = BATCH_SUBJECT,
) -> NotificationMilestone:
    """
    Record the observed state for a milestone, creating the row if needed.

    Only forward transitions are applied; observing an earlier state than the
    stored one (e.g. a document added after completion) leaves the row alone.
    NOTIFIED cannot be set here, only through claim_for_dispatch().
    """
    if state == MilestoneState.NOTIFIED:
        raise ValueError("notified is only reachable through claim_for_dispatch")

    milestone = get_milestone(db, batch_id, kind, subject_email)
    if milestone is None:
        milestone = NotificationMilestone(
            batch_id=batch_id,
            kind=kind.value,
            subject_email=subject_email,
            state=MilestoneState.NOT_STARTED.value,
        )
        _advance(milestone, state)
        try:
            db.add(milestone)
            db.commit()
            return milestone
        except IntegrityError:
            # Another run created the row first; fall through and advance it
            db.rollback()
            milestone = get_milestone(db, batch_id, kind, subject_email)
            if milestone is None:
                raise

    if _advance(milestone, state):
        db.commit()
    return milestone


def claim_for_dispatch(db: Session, milestone: NotificationMilestone) -> bool:
    """
    Atomically move a milestone from completed to notified.

    Returns True for exactly one caller per milestone; every other caller
    (including later re-runs of the pipeline) gets False and must not send.
    """
    now = _now_utc()
    result = db.execute(
        update(NotificationMilestone)
        .where(
            NotificationMilestone.id == milestone.id,
            NotificationMilestone.state == MilestoneState.COMPLETED.value,
        )
        .values(state=MilestoneState.NOTIFIED.value, notified_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    claimed = result.rowcount == 1
    db.refresh(milestone)
    if claimed:
        logger.info(
            "Claimed milestone %s kind=%s batch=%s",
            milestone.id,
            milestone.kind,
            milestone.batch_id,
        )
    return claimed


def release_claim(db: Session, milestone: NotificationMilestone) -> bool:
    """
    Hand a claimed milestone back (notified -> completed) after nothing was delivered.

    The only backward transition in the ledger. The next pipeline run or
    `ackportal recheck` can then claim it again; nothing retries within a run.
    """
    result = db.execute(
        update(NotificationMilestone)
        .where(
            NotificationMilestone.id == milestone.id,
            NotificationMilestone.state == MilestoneState.NOTIFIED.value,
        )
        .values(state=MilestoneState.COMPLETED.value, notified_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    released = result.rowcount == 1
    db.refresh(milestone)
    if released:
        logger.info(
            "Released milestone %s kind=%s batch=%s after failed dispatch",
            milestone.id,
            milestone.kind,
            milestone.batch_id,
        )
    return released


def record_dispatch_outcome(
    db: Session,
    milestone: NotificationMilestone,
    status: DispatchStatus,
    error: str | None = None,
) -> None:
    """Store the dispatch result; a FAILED dispatch also releases the claim."""
    milestone.dispatch_status = status.value
    milestone.last_error = error
    db.commit()
    if status == DispatchStatus.FAILED:
        release_claim(db, milestone)

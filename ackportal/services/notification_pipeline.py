"""Completion detection and notification pipeline.

Re-entered after every acknowledgement write. Each run is strictly
sequential:

    detect -> sync milestone -> claim -> assemble -> compose -> dispatch -> record

first for the acknowledging user's milestone, then for the batch milestone.
Completion is level-triggered; the milestone ledger decides whether it is
new, so re-runs after a milestone was notified send nothing. A dispatch in
which no message went out releases the milestone so the next run (or
`ackportal recheck`) can send it.

Nothing here raises to the caller: the acknowledgement that triggered the
run is already durable, and notification problems are only logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ackportal.core.config import settings
from ackportal.core.structured_logging import build_log_context, mask_email
from ackportal.db.enums import MilestoneKind, MilestoneState
from ackportal.db.models import Batch, NotificationMilestone
from ackportal.services import (
    attachment_service,
    batch_service,
    mail_service,
    milestone_service,
    notification_email_service,
    notification_templates,
    progress_service,
)
from ackportal.services.batch_service import normalize_email
from ackportal.services.mail_service import DispatchResult
from ackportal.services.notification_templates import BatchInfo, UserProfile
from ackportal.services.progress_service import Progress

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    batch_id: int
    email: str | None = None
    user_progress: Progress | None = None
    user_completed: bool = False
    batch_completed: bool = False
    user_notification: DispatchResult | None = None
    batch_notification: DispatchResult | None = None
    aborted: bool = False


def _batch_info(batch: Batch) -> BatchInfo:
    return BatchInfo(
        name=batch.name,
        start_date=batch.start_date,
        due_date=batch.due_date,
        description=batch.description,
    )


def _user_state(progress: Progress) -> MilestoneState:
    if progress.total > 0 and progress.acknowledged >= progress.total:
        return MilestoneState.COMPLETED
    if progress.acknowledged > 0:
        return MilestoneState.IN_PROGRESS
    return MilestoneState.NOT_STARTED


def _batch_state(db: Session, batch_id: int) -> MilestoneState:
    if progress_service.batch_completed(db, batch_id):
        return MilestoneState.COMPLETED
    if progress_service.count_acknowledgements(db, batch_id) > 0:
        return MilestoneState.IN_PROGRESS
    return MilestoneState.NOT_STARTED


def _user_profile(db: Session, batch_id: int, email: str) -> UserProfile:
    recipient = batch_service.get_recipient(db, batch_id, email)
    if recipient is None:
        return UserProfile(email=email)
    business = None
    if recipient.business_id is not None:
        business = batch_service.business_name_map(db).get(recipient.business_id)
    return UserProfile(
        email=email,
        display_name=recipient.display_name,
        department=recipient.department,
        job_title=recipient.job_title,
        location=recipient.location,
        business=business,
    )


def _errors_text(result: DispatchResult) -> str | None:
    return "; ".join(result.errors)[:2000] if result.errors else None


def _claim(
    db: Session,
    milestone: NotificationMilestone,
    admins: list[str],
) -> bool:
    """Claim a completed milestone for dispatch; False means skip silently."""
    if milestone.state != MilestoneState.COMPLETED.value:
        return False
    if not admins:
        # Left unclaimed so a later run (or `ackportal recheck`) can send it
        logger.warning(
            "No admin notification recipients configured; %s milestone for batch=%s not sent",
            milestone.kind,
            milestone.batch_id,
        )
        return False
    return milestone_service.claim_for_dispatch(db, milestone)


async def _deliver(
    db: Session,
    batch: Batch,
    milestone: NotificationMilestone,
    compose: Callable[[], Awaitable[DispatchResult]],
) -> DispatchResult:
    """
    Run compose-and-dispatch for a claimed milestone and record the outcome.

    Anything unexpected while assembling the message is recorded as a failed
    dispatch, which hands the milestone back for a later run. Persistence
    errors propagate to the pipeline.
    """
    try:
        result = await compose()
    except SQLAlchemyError:
        raise
    except Exception as exc:
        logger.exception(
            "Notification for %s milestone batch=%s could not be sent",
            milestone.kind,
            batch.id,
        )
        result = DispatchResult(
            attempted=1, failed=1, errors=[f"{exc.__class__.__name__}: {exc}"]
        )
    milestone_service.record_dispatch_outcome(db, milestone, result.status, _errors_text(result))
    return result


async def _notify_user_completion(
    db: Session,
    batch: Batch,
    email: str,
    milestone: NotificationMilestone,
) -> DispatchResult | None:
    admins = notification_email_service.admin_recipients(db)
    if not _claim(db, milestone, admins):
        return None

    async def compose() -> DispatchResult:
        documents = batch_service.list_documents(db, batch.id)
        attachments = await attachment_service.build_document_attachments(documents)
        attachments.append(attachment_service.build_user_completion_csv(db, batch, email))

        message = notification_templates.build_user_completion_email(
            app_url=settings.APP_URL,
            batch=_batch_info(batch),
            user=_user_profile(db, batch.id, email),
            completed_at=milestone.completed_at,
        )
        cc = [email] if settings.NOTIFY_USER_ON_COMPLETION else None
        return await mail_service.dispatch(
            admins, message.subject, message.body_html, attachments, cc=cc
        )

    result = await _deliver(db, batch, milestone, compose)
    logger.info(
        "User completion notification %s",
        result.status.value,
        extra=build_log_context(batch_id=batch.id, email=email, milestone=milestone.kind),
    )
    return result


async def _notify_batch_completion(
    db: Session,
    batch: Batch,
    milestone: NotificationMilestone,
) -> DispatchResult | None:
    admins = notification_email_service.admin_recipients(db)
    if not _claim(db, milestone, admins):
        return None

    async def compose() -> DispatchResult:
        documents = batch_service.list_documents(db, batch.id)
        attachments = await attachment_service.build_document_attachments(documents)
        attachments.append(attachment_service.build_batch_roster_csv(db, batch))

        message = notification_templates.build_batch_completion_email(
            app_url=settings.APP_URL,
            batch=_batch_info(batch),
            recipient_count=len(progress_service.recipient_emails(db, batch.id)),
            document_count=len(documents),
        )
        return await mail_service.dispatch(admins, message.subject, message.body_html, attachments)

    result = await _deliver(db, batch, milestone, compose)
    logger.info(
        "Batch completion notification %s",
        result.status.value,
        extra=build_log_context(batch_id=batch.id, milestone=milestone.kind),
    )
    return result


async def _process_user(db: Session, batch: Batch, email: str, outcome: PipelineOutcome) -> None:
    progress = progress_service.get_progress(db, batch.id, email)
    state = _user_state(progress)
    milestone = milestone_service.sync_milestone(
        db,
        batch_id=batch.id,
        kind=MilestoneKind.USER_COMPLETED,
        state=state,
        subject_email=email,
    )
    outcome.user_progress = progress
    outcome.user_completed = state == MilestoneState.COMPLETED
    if outcome.user_completed:
        outcome.user_notification = await _notify_user_completion(db, batch, email, milestone)


async def _process_batch(db: Session, batch: Batch, outcome: PipelineOutcome) -> None:
    state = _batch_state(db, batch.id)
    milestone = milestone_service.sync_milestone(
        db,
        batch_id=batch.id,
        kind=MilestoneKind.BATCH_COMPLETED,
        state=state,
    )
    outcome.batch_completed = state == MilestoneState.COMPLETED
    if outcome.batch_completed:
        outcome.batch_notification = await _notify_batch_completion(db, batch, milestone)


async def process_acknowledgement(db: Session, batch_id: int, email: str) -> PipelineOutcome:
    """Run completion detection and notification after one acknowledgement."""
    email = normalize_email(email)
    outcome = PipelineOutcome(batch_id=batch_id, email=email)
    try:
        batch = batch_service.get_batch(db, batch_id)
        if batch is None:
            logger.warning("Pipeline skipped: batch=%s no longer exists", batch_id)
            outcome.aborted = True
            return outcome
        await _process_user(db, batch, email, outcome)
        await _process_batch(db, batch, outcome)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Pipeline aborted on persistence error batch=%s email=%s",
            batch_id,
            mask_email(email),
        )
        outcome.aborted = True
    return outcome


async def recheck_batch(db: Session, batch_id: int) -> list[PipelineOutcome]:
    """
    Re-evaluate every recipient and the batch itself.

    Sends any milestone that is completed but was never claimed (for
    example because no admin recipients were configured at the time).
    """
    batch = batch_service.require_batch(db, batch_id)
    outcomes: list[PipelineOutcome] = []
    try:
        for email in progress_service.recipient_emails(db, batch_id):
            outcome = PipelineOutcome(batch_id=batch_id, email=email)
            await _process_user(db, batch, email, outcome)
            outcomes.append(outcome)
        batch_outcome = PipelineOutcome(batch_id=batch_id)
        await _process_batch(db, batch, batch_outcome)
        outcomes.append(batch_outcome)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Recheck aborted on persistence error batch=%s", batch_id)
        outcomes.append(PipelineOutcome(batch_id=batch_id, aborted=True))
    return outcomes


async def notify_batch_assigned(
    db: Session,
    batch_id: int,
    emails: list[str] | None = None,
) -> DispatchResult:
    """
    Send the assignment message, with every batch document attached, to the
    batch's recipients (or the given subset of them).

    Raises:
        BatchNotFoundError: batch does not exist
    """
    batch = batch_service.require_batch(db, batch_id)
    recipients = progress_service.recipient_emails(db, batch_id)
    if emails is not None:
        wanted = {normalize_email(e) for e in emails}
        recipients = [e for e in recipients if e in wanted]
    if not recipients:
        logger.info("Assignment notification skipped: no recipients for batch=%s", batch_id)
        return DispatchResult()

    documents = batch_service.list_documents(db, batch_id)
    attachments = await attachment_service.build_document_attachments(documents)
    message = notification_templates.build_assignment_email(
        app_url=settings.APP_URL, batch=_batch_info(batch)
    )
    return await mail_service.dispatch(recipients, message.subject, message.body_html, attachments)


async def run_for_acknowledgement(session_factory, batch_id: int, email: str) -> PipelineOutcome:
    """Background-task entry point: runs the pipeline on its own session."""
    db = session_factory()
    try:
        return await process_acknowledgement(db, batch_id, email)
    finally:
        db.close()

"""CLI tools for acknowledgement portal administration."""

import asyncio
import logging

import click

from ackportal.db.enums import BatchStatus
from ackportal.db.session import SessionLocal
from ackportal.services import (
    batch_service,
    notification_email_service,
    notification_pipeline,
    progress_service,
)
from ackportal.services.batch_service import BatchNotFoundError


@click.group()
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """Acknowledgement portal CLI tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--batch-id", type=int, default=None, help="Batch to recheck (default: all active)")
def recheck(batch_id: int | None):
    """
    Re-run completion detection and send any notification still owed.

    Picks up milestones that completed while no admin recipients were
    configured. Milestones already notified are never sent again.

    Example:
        ackportal recheck --batch-id 12
    """
    db = SessionLocal()
    try:
        if batch_id is not None:
            batch_ids = [batch_id]
        else:
            batch_ids = [
                b.id for b in batch_service.list_batches(db, status=BatchStatus.ACTIVE.value)
            ]

        for bid in batch_ids:
            try:
                outcomes = asyncio.run(notification_pipeline.recheck_batch(db, bid))
            except BatchNotFoundError:
                click.echo(f"❌ Batch {bid} not found")
                continue
            sent = [
                o
                for o in outcomes
                if o.user_notification is not None or o.batch_notification is not None
            ]
            click.echo(f"✓ Batch {bid}: {len(outcomes)} checked, {len(sent)} notification(s) sent")
    finally:
        db.close()


@cli.command()
@click.option("--batch-id", type=int, required=True, help="Batch to announce")
def notify_assignment(batch_id: int):
    """Email the assignment message to every recipient of a batch."""
    db = SessionLocal()
    try:
        result = asyncio.run(notification_pipeline.notify_batch_assigned(db, batch_id))
        click.echo(
            f"✓ Assignment notification {result.status.value}: "
            f"{result.sent} sent, {result.failed} failed"
        )
    except BatchNotFoundError:
        click.echo(f"❌ Batch {batch_id} not found")
    finally:
        db.close()


@cli.command()
@click.argument("email")
def add_notification_email(email: str):
    """Add an administrator address for completion notifications."""
    db = SessionLocal()
    try:
        emails = notification_email_service.add_notification_email(db, email)
        click.echo(f"✓ {len(emails)} notification address(es) configured")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        raise
    finally:
        db.close()


@cli.command()
@click.option("--batch-id", type=int, required=True)
@click.option("--email", default=None, help="Show one recipient's progress")
def progress(batch_id: int, email: str | None):
    """Print acknowledgement progress for a batch or one recipient."""
    db = SessionLocal()
    try:
        batch = batch_service.require_batch(db, batch_id)
        result = progress_service.get_progress(db, batch_id, email)
        who = email or "all recipients"
        click.echo(
            f"{batch.name} ({who}): {result.acknowledged}/{result.total} ({result.percent}%)"
        )
    except BatchNotFoundError:
        click.echo(f"❌ Batch {batch_id} not found")
    finally:
        db.close()


if __name__ == "__main__":
    cli()

"""Notification attachment assembly.

Builds the in-memory attachment list for a notification: one attachment per
batch document (fetched from its content source) plus a CSV summary. A
document that cannot be fetched is left out; a partial attachment set never
blocks delivery.
"""

from __future__ import annotations

import base64
import csv
import io
import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence
from urllib.parse import unquote, urlparse

import httpx
from sqlalchemy.orm import Session

from ackportal.core.structured_logging import mask_email
from ackportal.db.models import Batch, Document, Recipient
from ackportal.services import ack_service, batch_service, content_sources, progress_service
from ackportal.services.content_sources import ContentFetchError, UnresolvableContentError
from ackportal.services.graph_token_service import GraphAuthError

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv"
CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")

SUMMARY_HEADERS = (
    "Batch",
    "Email",
    "Display Name",
    "Department",
    "Job Title",
    "Location",
    "Business",
    "Primary Group",
    "Documents Acknowledged",
    "Total Documents",
    "Completed At",
)


@dataclass(frozen=True)
class Attachment:
    name: str
    content_bytes: str  # base64
    content_type: str

    @property
    def decoded_size(self) -> int:
        """Decoded byte size estimated from the base64 length (no decoding)."""
        return len(self.content_bytes) * 3 // 4

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str) -> "Attachment":
        return cls(
            name=name,
            content_bytes=base64.b64encode(data).decode("ascii"),
            content_type=content_type,
        )


# =============================================================================
# Document attachments
# =============================================================================


def attachment_name(document: Document) -> str:
    """Document title, with the file extension from its URL when the title has none."""
    title = (document.title or "").strip() or "document"
    if posixpath.splitext(title)[1]:
        return title
    try:
        path = unquote(urlparse(document.url or "").path)
    except ValueError:
        return title
    ext = posixpath.splitext(path)[1]
    if ext and len(ext) <= 6:
        return f"{title}{ext}"
    return title


async def fetch_document_attachment(
    document: Document,
    token_provider: content_sources.TokenProvider | None = None,
) -> Attachment | None:
    """Fetch one document. Returns None (and logs) on any fetch or token failure."""
    try:
        source = content_sources.select_source(document)
        request = await content_sources.resolve(source, token_provider)
        content = await content_sources.fetch_content(request)
    except GraphAuthError as exc:
        logger.warning(
            "Skipping attachment for document=%s: token unavailable (%s)",
            document.id,
            exc.__class__.__name__,
        )
        return None
    except (
        UnresolvableContentError,
        ContentFetchError,
        httpx.HTTPError,
        httpx.InvalidURL,
        ValueError,
    ) as exc:
        # ValueError covers locators urlparse cannot parse
        logger.warning(
            "Skipping attachment for document=%s: %s",
            document.id,
            exc.__class__.__name__,
        )
        return None

    return Attachment.from_bytes(attachment_name(document), content.body, content.content_type)


async def build_document_attachments(
    documents: Sequence[Document],
    token_provider: content_sources.TokenProvider | None = None,
) -> list[Attachment]:
    """Attachments for the given documents, in order, omitting failures."""
    attachments: list[Attachment] = []
    for document in documents:
        attachment = await fetch_document_attachment(document, token_provider)
        if attachment is not None:
            attachments.append(attachment)
    if len(attachments) < len(documents):
        logger.info(
            "Assembled %s of %s document attachments", len(attachments), len(documents)
        )
    return attachments


# =============================================================================
# CSV summaries
# =============================================================================


def _csv_safe(value: str) -> str:
    if value and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def _serialize_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_safe(_serialize_csv_value(value)) for value in row])
    return output.getvalue()


def _summary_row(
    db: Session,
    batch: Batch,
    email: str,
    recipient: Recipient | None,
    business_names: dict[int, str],
) -> list[Any]:
    progress = progress_service.get_progress(db, batch.id, email)
    business = ""
    if recipient and recipient.business_id is not None:
        business = business_names.get(recipient.business_id, "")
    return [
        batch.name,
        email,
        recipient.display_name if recipient else "",
        recipient.department if recipient else "",
        recipient.job_title if recipient else "",
        recipient.location if recipient else "",
        business,
        recipient.primary_group if recipient else "",
        progress.acknowledged,
        progress.total,
        ack_service.last_acknowledged_at(db, batch.id, email),
    ]


def _slug(value: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in value.strip())
    return cleaned.strip("_") or "batch"


def build_user_completion_csv(db: Session, batch: Batch, email: str) -> Attachment:
    """One-row CSV describing a user's completion of a batch."""
    email = batch_service.normalize_email(email)
    recipient = batch_service.get_recipient(db, batch.id, email)
    row = _summary_row(db, batch, email, recipient, batch_service.business_name_map(db))
    content = _write_csv(SUMMARY_HEADERS, [row])
    logger.debug("Built completion CSV for %s", mask_email(email))
    return Attachment.from_bytes(
        f"{_slug(batch.name)}_completion.csv", content.encode("utf-8"), CSV_CONTENT_TYPE
    )


def build_batch_roster_csv(db: Session, batch: Batch) -> Attachment:
    """CSV roster of every recipient who completed the batch."""
    business_names = batch_service.business_name_map(db)
    recipients = {r.email: r for r in batch_service.list_recipients(db, batch.id)}
    rows = [
        _summary_row(db, batch, email, recipients.get(email), business_names)
        for email in progress_service.completed_recipient_emails(db, batch.id)
    ]
    content = _write_csv(SUMMARY_HEADERS, rows)
    return Attachment.from_bytes(
        f"{_slug(batch.name)}_roster.csv", content.encode("utf-8"), CSV_CONTENT_TYPE
    )

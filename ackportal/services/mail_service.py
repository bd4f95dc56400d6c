"""Outbound mail via Microsoft Graph sendMail.

dispatch() splits one logical notification into as many physical messages
as transport limits require: recipients into groups of at most
MAIL_MAX_RECIPIENTS_PER_MESSAGE, and attachments into chunks bounded by
count and decoded size. Each physical message is an independent request;
a failed message is logged and the remaining ones are still attempted.
Delivery is best-effort: no retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence, TypeVar

import httpx

from ackportal.core.config import settings
from ackportal.core.structured_logging import mask_email
from ackportal.db.enums import DispatchStatus
from ackportal.services import graph_token_service, notification_templates
from ackportal.services.attachment_service import Attachment
from ackportal.services.graph_token_service import GraphAuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MailSendError(Exception):
    """Graph rejected a sendMail request."""


@dataclass
class DispatchResult:
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> DispatchStatus:
        if self.attempted == 0:
            return DispatchStatus.SKIPPED
        if self.failed == 0:
            return DispatchStatus.SENT
        if self.sent == 0:
            return DispatchStatus.FAILED
        return DispatchStatus.PARTIAL

    def as_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "status": self.status.value,
        }


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def chunk_attachments(
    attachments: Sequence[Attachment],
    *,
    max_count: int | None = None,
    max_bytes: int | None = None,
) -> list[list[Attachment]]:
    """
    Greedy, order-preserving split of attachments into message-sized chunks.

    A chunk is closed when adding the next attachment would exceed max_count
    attachments or max_bytes of decoded size. An attachment larger than
    max_bytes on its own gets a chunk to itself. Concatenating the result
    yields the input.
    """
    if max_count is None:
        max_count = settings.MAIL_MAX_ATTACHMENTS_PER_MESSAGE
    if max_bytes is None:
        max_bytes = settings.MAIL_MAX_ATTACHMENT_BYTES_PER_MESSAGE
    if max_count <= 0 or max_bytes <= 0:
        raise ValueError("attachment limits must be positive")

    chunks: list[list[Attachment]] = []
    current: list[Attachment] = []
    current_bytes = 0
    for attachment in attachments:
        size = attachment.decoded_size
        if current and (len(current) + 1 > max_count or current_bytes + size > max_bytes):
            chunks.append(current)
            current = []
            current_bytes = 0
        current.append(attachment)
        current_bytes += size
    if current:
        chunks.append(current)
    return chunks


def dedupe_addresses(addresses: Sequence[str] | None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for raw in addresses or []:
        address = (raw or "").strip()
        key = address.lower()
        if address and key not in seen:
            seen.add(key)
            out.append(address)
    return out


def _recipients(addresses: Sequence[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": a, "name": a}} for a in addresses]


def build_graph_message(
    *,
    to: Sequence[str],
    subject: str,
    body_html: str,
    attachments: Sequence[Attachment] = (),
    cc: Sequence[str] = (),
    bcc: Sequence[str] = (),
) -> dict[str, Any]:
    """Graph sendMail payload for one physical message."""
    message: dict[str, Any] = {
        "subject": subject,
        "body": {"contentType": "HTML", "content": body_html},
        "toRecipients": _recipients(to),
    }
    if cc:
        message["ccRecipients"] = _recipients(cc)
    if bcc:
        message["bccRecipients"] = _recipients(bcc)
    if attachments:
        message["attachments"] = [
            {
                "@odata.type": "#microsoft.graph.fileAttachment",
                "name": a.name,
                "contentType": a.content_type,
                "contentBytes": a.content_bytes,
            }
            for a in attachments
        ]
    return {"message": message, "saveToSentItems": settings.MAIL_SAVE_TO_SENT_ITEMS}


async def send_graph_message(payload: dict[str, Any]) -> None:
    """
    Send one physical message. Raises on failure.

    When mail is not configured the message is logged and dropped.
    """
    message = payload["message"]
    if not settings.mail_configured:
        logger.info(
            "[DRY RUN] Mail send skipped subject=%r to=%s attachments=%s",
            message["subject"],
            len(message["toRecipients"]),
            len(message.get("attachments", [])),
        )
        return

    token = await graph_token_service.get_token(graph_token_service.MAIL_SCOPES)
    url = f"{settings.GRAPH_BASE_URL.rstrip('/')}/users/{settings.MAIL_SENDER}/sendMail"
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            json=payload,
        )

    if response.status_code >= 300:
        error_detail = None
        try:
            data = response.json()
            if isinstance(data, dict):
                error = data.get("error")
                error_detail = error.get("message") if isinstance(error, dict) else error
        except ValueError:
            pass
        error_msg = f"sendMail failed: {response.status_code}"
        if error_detail:
            error_msg = f"{error_msg} ({error_detail})"
        raise MailSendError(error_msg)


async def dispatch(
    recipients: Sequence[str],
    subject: str,
    body_html: str,
    attachments: Sequence[Attachment] | None = None,
    *,
    cc: Sequence[str] | None = None,
    bcc: Sequence[str] | None = None,
) -> DispatchResult:
    """
    Send a notification to every recipient, chunking recipients and attachments.

    Never raises for transport failures; inspect the returned DispatchResult.
    """
    result = DispatchResult()
    to = dedupe_addresses(recipients)
    if not to:
        logger.info("Dispatch skipped: no recipients for subject=%r", subject)
        return result

    cc_list = dedupe_addresses(cc)
    bcc_list = dedupe_addresses(bcc)
    attachment_chunks = chunk_attachments(list(attachments or [])) or [[]]
    parts = len(attachment_chunks)

    for group in chunk(to, settings.MAIL_MAX_RECIPIENTS_PER_MESSAGE):
        for index, part in enumerate(attachment_chunks, start=1):
            part_subject = subject
            part_body = body_html
            if parts > 1:
                part_subject = f"{subject} (part {index} of {parts})"
                part_body = body_html + notification_templates.multipart_note(index, parts)

            payload = build_graph_message(
                to=group,
                subject=part_subject,
                body_html=part_body,
                attachments=part,
                cc=cc_list,
                bcc=bcc_list,
            )
            result.attempted += 1
            try:
                await send_graph_message(payload)
            except (MailSendError, GraphAuthError, httpx.HTTPError, httpx.InvalidURL) as exc:
                result.failed += 1
                result.errors.append(str(exc) or exc.__class__.__name__)
                logger.warning(
                    "Mail part %s/%s failed for %s recipients (first=%s): %s",
                    index,
                    parts,
                    len(group),
                    mask_email(group[0]),
                    exc.__class__.__name__,
                )
                continue
            result.sent += 1

    logger.info(
        "Dispatched %r: %s sent, %s failed of %s messages",
        subject,
        result.sent,
        result.failed,
        result.attempted,
    )
    return result

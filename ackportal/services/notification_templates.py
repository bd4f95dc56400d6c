"""Notification email templates.

Plain string templating for the three portal messages. Every value is
HTML-escaped and every optional field may be missing: absent values drop
their row instead of raising.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from datetime import date, datetime

PORTAL_NAME = "Acknowledgement Portal"

_WRAPPER_STYLE = "font-family:Segoe UI,Tahoma,Arial,sans-serif;font-size:14px;color:#111"


@dataclass(frozen=True)
class ComposedMessage:
    subject: str
    body_html: str


@dataclass(frozen=True)
class BatchInfo:
    name: str
    start_date: date | str | None = None
    due_date: date | str | None = None
    description: str | None = None


@dataclass(frozen=True)
class UserProfile:
    email: str
    display_name: str | None = None
    department: str | None = None
    job_title: str | None = None
    location: str | None = None
    business: str | None = None


def format_date(value: date | datetime | str | None) -> str:
    """Render a date as YYYY-MM-DD; unparseable strings are shown as given."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return text


def _esc(value: object | None) -> str:
    return html.escape(str(value)) if value not in (None, "") else ""


def _rows(items: list[tuple[str, object | None]]) -> str:
    lines = [
        f"<li><strong>{_esc(label)}:</strong> {_esc(value)}</li>"
        for label, value in items
        if value not in (None, "")
    ]
    if not lines:
        return ""
    return "<ul>" + "".join(lines) + "</ul>"


def _portal_link(app_url: str) -> str:
    if not app_url:
        return ""
    url = _esc(app_url)
    return (
        f'<p><a href="{url}" target="_blank" rel="noopener">'
        f"Open the {PORTAL_NAME}</a></p>"
    )


def _wrap(*parts: str) -> str:
    inner = "".join(p for p in parts if p)
    footer = '<p style="color:#666">This is an automated message. Do not reply.</p>'
    return f'<div style="{_WRAPPER_STYLE}">{inner}{footer}</div>'


def _batch_rows(batch: BatchInfo) -> str:
    return _rows(
        [
            ("Start", format_date(batch.start_date)),
            ("Due", format_date(batch.due_date)),
        ]
    )


def build_assignment_email(*, app_url: str, batch: BatchInfo) -> ComposedMessage:
    """Message sent to recipients when a batch is assigned to them."""
    subject = f"New Acknowledgement Assigned: {batch.name}"
    body = _wrap(
        "<p>Hello,</p>",
        f"<p>You have been assigned a new acknowledgement batch: "
        f"<strong>{_esc(batch.name)}</strong>.</p>",
        f"<p>{_esc(batch.description)}</p>" if batch.description else "",
        _batch_rows(batch),
        "<p>Please open the portal to review and acknowledge the assigned documents.</p>",
        _portal_link(app_url),
    )
    return ComposedMessage(subject=subject, body_html=body)


def build_user_completion_email(
    *,
    app_url: str,
    batch: BatchInfo,
    user: UserProfile,
    completed_at: date | datetime | str | None = None,
) -> ComposedMessage:
    """Admin message: one recipient acknowledged every document in a batch."""
    who = user.display_name or user.email
    subject = f"Acknowledgement Completed: {who} - {batch.name}"
    body = _wrap(
        "<p>Hello,</p>",
        f"<p><strong>{_esc(who)}</strong> has acknowledged all documents in "
        f"<strong>{_esc(batch.name)}</strong>.</p>",
        _rows(
            [
                ("Name", user.display_name),
                ("Email", user.email),
                ("Department", user.department),
                ("Job Title", user.job_title),
                ("Location", user.location),
                ("Business", user.business),
                ("Completed", format_date(completed_at)),
                ("Due", format_date(batch.due_date)),
            ]
        ),
        "<p>A summary is attached.</p>",
        _portal_link(app_url),
    )
    return ComposedMessage(subject=subject, body_html=body)


def build_batch_completion_email(
    *,
    app_url: str,
    batch: BatchInfo,
    recipient_count: int,
    document_count: int,
) -> ComposedMessage:
    """Admin message: every recipient completed the batch."""
    subject = f"Batch Completed: {batch.name}"
    body = _wrap(
        "<p>Hello,</p>",
        f"<p>All recipients have acknowledged every document in "
        f"<strong>{_esc(batch.name)}</strong>.</p>",
        f"<p>{_esc(batch.description)}</p>" if batch.description else "",
        _rows(
            [
                ("Recipients", recipient_count),
                ("Documents", document_count),
                ("Start", format_date(batch.start_date)),
                ("Due", format_date(batch.due_date)),
            ]
        ),
        "<p>The completion roster is attached.</p>",
        _portal_link(app_url),
    )
    return ComposedMessage(subject=subject, body_html=body)


def multipart_note(part: int, total: int) -> str:
    """Body note appended when attachments are split across messages."""
    return (
        f'<p style="color:#666">This is part {part} of {total}. '
        "Attachments were split across several emails because of size limits.</p>"
    )

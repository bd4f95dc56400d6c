"""Tests for notification attachment assembly."""

import base64
import csv
import io
from types import SimpleNamespace

import httpx
import pytest

from ackportal.services import ack_service, attachment_service, batch_service


def _decode_csv(attachment) -> list[list[str]]:
    text = base64.b64decode(attachment.content_bytes).decode("utf-8")
    return list(csv.reader(io.StringIO(text)))


def _ack_all(db, batch, email):
    for document in batch_service.list_documents(db, batch.id):
        ack_service.record_acknowledgement(
            db, batch_id=batch.id, document_id=document.id, email=email
        )


def test_attachment_name_keeps_title_extension():
    document = SimpleNamespace(title="Policy.docx", url="https://x.example.com/a.pdf")

    assert attachment_service.attachment_name(document) == "Policy.docx"


def test_attachment_name_borrows_extension_from_url():
    document = SimpleNamespace(title="Travel Policy", url="https://x.example.com/files/travel%20policy.pdf?v=2")

    assert attachment_service.attachment_name(document) == "Travel Policy.pdf"


def test_attachment_name_without_title():
    document = SimpleNamespace(title="", url=None)

    assert attachment_service.attachment_name(document) == "document"


@pytest.mark.asyncio
async def test_documents_are_fetched_in_order(db, make_batch, document_bytes):
    batch = make_batch(documents=2)
    documents = batch_service.list_documents(db, batch.id)
    document_bytes[documents[0].url] = b"first"
    document_bytes[documents[1].url] = b"second"

    attachments = await attachment_service.build_document_attachments(documents)

    assert [a.name for a in attachments] == ["Policy 1.pdf", "Policy 2.pdf"]
    assert base64.b64decode(attachments[1].content_bytes) == b"second"
    assert attachments[0].content_type == "application/pdf"


@pytest.mark.asyncio
async def test_failed_documents_are_omitted(db, make_batch, document_bytes):
    batch = make_batch(documents=1)
    batch_service.add_documents(
        db,
        batch.id,
        [
            # Remote library item, but no Graph credentials configured
            {"title": "Library file", "drive_id": "d1", "item_id": "i1"},
            # No locator at all
            {"title": "Broken"},
        ],
    )
    documents = batch_service.list_documents(db, batch.id)

    attachments = await attachment_service.build_document_attachments(documents)

    assert [a.name for a in attachments] == ["Policy 1.pdf"]


def test_csv_values_are_sanitized():
    content = attachment_service._write_csv(["A", "B"], [["=SUM(A1)", "@home"], [None, "plain"]])

    rows = list(csv.reader(io.StringIO(content)))
    assert rows == [["A", "B"], ["'=SUM(A1)", "'@home"], ["", "plain"]]


def test_user_completion_csv(db, make_batch):
    business = batch_service.create_business(db, name="Retail")
    batch = make_batch(documents=2, recipients=())
    batch_service.add_recipients(
        db,
        batch.id,
        [
            {
                "email": "Alice@Example.com",
                "display_name": "Alice Smith",
                "department": "Finance",
                "job_title": "Analyst",
                "location": "Lagos",
                "business_id": business.id,
                "primary_group": "Staff",
            }
        ],
    )
    _ack_all(db, batch, "alice@example.com")

    attachment = attachment_service.build_user_completion_csv(db, batch, "alice@example.com")

    assert attachment.name == "Code_of_Conduct_2026_completion.csv"
    assert attachment.content_type == "text/csv"
    header, row = _decode_csv(attachment)
    assert header == list(attachment_service.SUMMARY_HEADERS)
    assert row[:10] == [
        "Code of Conduct 2026",
        "alice@example.com",
        "Alice Smith",
        "Finance",
        "Analyst",
        "Lagos",
        "Retail",
        "Staff",
        "2",
        "2",
    ]
    assert row[10] != ""


def test_user_completion_csv_for_unknown_recipient(db, make_batch):
    batch = make_batch(documents=1, recipients=())

    header, row = _decode_csv(
        attachment_service.build_user_completion_csv(db, batch, "ghost@example.com")
    )

    assert row[1] == "ghost@example.com"
    assert row[2:8] == ["", "", "", "", "", ""]
    assert row[8:10] == ["0", "1"]


def test_batch_roster_lists_completed_recipients_only(db, make_batch):
    batch = make_batch(
        documents=1, recipients=("a@example.com", "b@example.com", "c@example.com")
    )
    _ack_all(db, batch, "a@example.com")
    _ack_all(db, batch, "c@example.com")

    rows = _decode_csv(attachment_service.build_batch_roster_csv(db, batch))

    assert [r[1] for r in rows[1:]] == ["a@example.com", "c@example.com"]


@pytest.mark.asyncio
async def test_unparseable_locators_are_omitted(db, make_batch, monkeypatch):
    from ackportal.services import content_sources
    from ackportal.services.content_sources import FetchedContent

    async def fake_fetch(request):
        if "exa\x7fmple" in request.url:
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")
        return FetchedContent(body=b"%PDF", content_type="application/pdf")

    monkeypatch.setattr(content_sources, "fetch_content", fake_fetch)
    batch = make_batch(documents=1)
    batch_service.add_documents(
        db,
        batch.id,
        [
            {"title": "Bad host", "url": "http://[broken/policy.pdf"},
            {"title": "Control char", "url": "http://exa\x7fmple.com/x.pdf"},
        ],
    )
    documents = batch_service.list_documents(db, batch.id)

    attachments = await attachment_service.build_document_attachments(documents)

    assert [a.name for a in attachments] == ["Policy 1.pdf"]


def test_attachment_name_with_unparseable_url():
    document = SimpleNamespace(title="Policy", url="http://[broken/policy.pdf")

    assert attachment_service.attachment_name(document) == "Policy"

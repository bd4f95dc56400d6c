"""Tests for acknowledgement recording."""

import pytest
from sqlalchemy import func, select

from ackportal.db.models import Acknowledgement
from ackportal.services import ack_service, batch_service, progress_events
from ackportal.services.batch_service import BatchNotFoundError, DocumentNotFoundError


def _count(db, batch_id):
    return db.execute(
        select(func.count(Acknowledgement.id)).where(Acknowledgement.batch_id == batch_id)
    ).scalar_one()


def test_resubmitting_acknowledgement_keeps_one_row(db, make_batch):
    batch = make_batch(documents=1)
    document = batch_service.list_documents(db, batch.id)[0]

    first = ack_service.record_acknowledgement(
        db, batch_id=batch.id, document_id=document.id, email="alice@example.com"
    )
    second = ack_service.record_acknowledgement(
        db, batch_id=batch.id, document_id=document.id, email="ALICE@example.com "
    )

    assert first.id == second.id
    assert second.email == "alice@example.com"
    assert _count(db, batch.id) == 1


def test_acknowledgement_requires_email(db, make_batch):
    batch = make_batch(documents=1)
    document = batch_service.list_documents(db, batch.id)[0]

    with pytest.raises(ValueError):
        ack_service.record_acknowledgement(
            db, batch_id=batch.id, document_id=document.id, email="   "
        )


def test_acknowledgement_for_unknown_batch(db):
    with pytest.raises(BatchNotFoundError):
        ack_service.record_acknowledgement(
            db, batch_id=999, document_id=1, email="alice@example.com"
        )


def test_acknowledgement_for_document_of_another_batch(db, make_batch):
    batch = make_batch(documents=1)
    other = make_batch(documents=1, name="Other")
    foreign = batch_service.list_documents(db, other.id)[0]

    with pytest.raises(DocumentNotFoundError):
        ack_service.record_acknowledgement(
            db, batch_id=batch.id, document_id=foreign.id, email="alice@example.com"
        )
    assert _count(db, batch.id) == 0


def test_acknowledgement_emits_progress_event(db, make_batch):
    batch = make_batch(documents=1)
    document = batch_service.list_documents(db, batch.id)[0]
    events = []
    unsubscribe = progress_events.subscribe(events.append)

    ack_service.record_acknowledgement(
        db, batch_id=batch.id, document_id=document.id, email="Alice@example.com"
    )
    unsubscribe()
    ack_service.record_acknowledgement(
        db, batch_id=batch.id, document_id=document.id, email="alice@example.com"
    )

    assert events == [
        progress_events.ProgressChanged(
            batch_id=batch.id, document_id=document.id, email="alice@example.com"
        )
    ]


def test_failing_listener_does_not_break_the_write(db, make_batch):
    batch = make_batch(documents=1)
    document = batch_service.list_documents(db, batch.id)[0]

    def broken(event):
        raise RuntimeError("listener down")

    progress_events.subscribe(broken)
    ack = ack_service.record_acknowledgement(
        db, batch_id=batch.id, document_id=document.id, email="alice@example.com"
    )

    assert ack.id is not None


def test_list_acknowledged_document_ids(db, make_batch):
    batch = make_batch(documents=3)
    documents = batch_service.list_documents(db, batch.id)
    for document in (documents[2], documents[0]):
        ack_service.record_acknowledgement(
            db, batch_id=batch.id, document_id=document.id, email="alice@example.com"
        )

    ids = ack_service.list_acknowledged_document_ids(db, batch.id, "ALICE@example.com")

    assert ids == [documents[0].id, documents[2].id]
    assert ack_service.last_acknowledged_at(db, batch.id, "alice@example.com") is not None
    assert ack_service.last_acknowledged_at(db, batch.id, "bob@example.com") is None

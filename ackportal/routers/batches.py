"""
Batches Router - /batches endpoints.

Batch, document and recipient administration plus per-batch progress,
acknowledged-document lookups and the notification milestone ledger.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ackportal.core.deps import get_db
from ackportal.schemas import (
    AcknowledgedIds,
    AssignmentNotifyRequest,
    BatchCreate,
    BatchRead,
    DispatchSummary,
    DocumentCreate,
    DocumentRead,
    MilestoneRead,
    ProgressRead,
    RecipientCreate,
    RecipientRead,
)
from ackportal.services import (
    ack_service,
    batch_service,
    milestone_service,
    notification_pipeline,
    progress_service,
)
from ackportal.services.batch_service import BatchNotFoundError

router = APIRouter(prefix="/batches", tags=["batches"])


def _require_batch(db: Session, batch_id: int):
    try:
        return batch_service.require_batch(db, batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")


# =============================================================================
# Batches
# =============================================================================


@router.get("", response_model=list[BatchRead])
def list_batches(
    status: str | None = Query(None, description="'active' or 'inactive'"),
    db: Session = Depends(get_db),
):
    return batch_service.list_batches(db, status=status)


@router.post("", response_model=BatchRead, status_code=201)
def create_batch(data: BatchCreate, db: Session = Depends(get_db)):
    return batch_service.create_batch(
        db,
        name=data.name,
        start_date=data.start_date,
        due_date=data.due_date,
        description=data.description,
        status=data.status.value,
    )


@router.get("/{batch_id}", response_model=BatchRead)
def get_batch(batch_id: int, db: Session = Depends(get_db)):
    return _require_batch(db, batch_id)


@router.delete("/{batch_id}", status_code=204)
def delete_batch(batch_id: int, db: Session = Depends(get_db)):
    _require_batch(db, batch_id)
    batch_service.delete_batch(db, batch_id)


# =============================================================================
# Documents & recipients
# =============================================================================


@router.get("/{batch_id}/documents", response_model=list[DocumentRead])
def list_documents(batch_id: int, db: Session = Depends(get_db)):
    _require_batch(db, batch_id)
    return batch_service.list_documents(db, batch_id)


@router.post("/{batch_id}/documents", response_model=list[DocumentRead], status_code=201)
def add_documents(batch_id: int, data: list[DocumentCreate], db: Session = Depends(get_db)):
    _require_batch(db, batch_id)
    if not data:
        raise HTTPException(status_code=400, detail="At least one document is required")
    return batch_service.add_documents(db, batch_id, [d.model_dump(mode="json") for d in data])


@router.get("/{batch_id}/recipients", response_model=list[RecipientRead])
def list_recipients(batch_id: int, db: Session = Depends(get_db)):
    _require_batch(db, batch_id)
    return batch_service.list_recipients(db, batch_id)


@router.post("/{batch_id}/recipients", response_model=list[RecipientRead], status_code=201)
def add_recipients(batch_id: int, data: list[RecipientCreate], db: Session = Depends(get_db)):
    """Add recipients; addresses already assigned to the batch are skipped."""
    _require_batch(db, batch_id)
    return batch_service.add_recipients(db, batch_id, [r.model_dump() for r in data])


# =============================================================================
# Progress & acknowledgements
# =============================================================================


@router.get("/{batch_id}/acks", response_model=AcknowledgedIds)
def list_acknowledged(
    batch_id: int,
    email: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Document ids the user has acknowledged in this batch."""
    _require_batch(db, batch_id)
    return AcknowledgedIds(ids=ack_service.list_acknowledged_document_ids(db, batch_id, email))


@router.get("/{batch_id}/progress", response_model=ProgressRead)
def get_progress(
    batch_id: int,
    email: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Batch progress, or one recipient's progress when email is given."""
    _require_batch(db, batch_id)
    return progress_service.get_progress(db, batch_id, email or None).as_dict()


# =============================================================================
# Notifications
# =============================================================================


@router.get("/{batch_id}/milestones", response_model=list[MilestoneRead])
def list_milestones(batch_id: int, db: Session = Depends(get_db)):
    _require_batch(db, batch_id)
    return milestone_service.list_milestones(db, batch_id)


@router.post("/{batch_id}/notify-assignment", response_model=DispatchSummary)
async def notify_assignment(
    batch_id: int,
    data: AssignmentNotifyRequest | None = None,
    db: Session = Depends(get_db),
):
    """Email the assignment message (with documents attached) to recipients."""
    _require_batch(db, batch_id)
    emails = [str(e) for e in data.emails] if data and data.emails is not None else None
    result = await notification_pipeline.notify_batch_assigned(db, batch_id, emails)
    return result.as_dict()

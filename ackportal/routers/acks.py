"""
Acknowledgements Router - POST /ack.

The acknowledgement is written synchronously; completion detection and
notification run afterwards as a background task on a fresh session, so a
notification failure never fails the submission.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ackportal.core.deps import get_db, get_session_factory
from ackportal.core.rate_limit import ack_limit, limiter
from ackportal.core.structured_logging import mask_email
from ackportal.schemas import AckCreate, AckResponse
from ackportal.services import ack_service, notification_pipeline
from ackportal.services.batch_service import BatchNotFoundError, DocumentNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["acknowledgements"])


@router.post("/ack", response_model=AckResponse)
@limiter.limit(ack_limit)
def submit_acknowledgement(
    request: Request,
    data: AckCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    try:
        ack = ack_service.record_acknowledgement(
            db,
            batch_id=data.batch_id,
            document_id=data.document_id,
            email=data.email,
        )
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail="Batch not found")
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Document not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    background_tasks.add_task(
        notification_pipeline.run_for_acknowledgement,
        session_factory,
        ack.batch_id,
        ack.email,
    )
    logger.debug("Scheduled notification pipeline for %s", mask_email(ack.email))
    return AckResponse(ok=True)

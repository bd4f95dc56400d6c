"""Businesses Router - reporting lookup used in completion summaries."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ackportal.core.deps import get_db
from ackportal.schemas import BusinessCreate, BusinessRead
from ackportal.services import batch_service

router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.get("", response_model=list[BusinessRead])
def list_businesses(db: Session = Depends(get_db)):
    return batch_service.list_businesses(db)


@router.post("", response_model=BusinessRead, status_code=201)
def create_business(data: BusinessCreate, db: Session = Depends(get_db)):
    return batch_service.create_business(
        db,
        name=data.name,
        code=data.code,
        description=data.description,
        is_active=data.is_active,
    )

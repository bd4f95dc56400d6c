"""Pydantic schemas for batches, documents, recipients and businesses."""

from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field

from ackportal.db.enums import BatchStatus, DocumentSource


class BatchCreate(BaseModel):
    """Request to create a batch."""
    name: str = Field(..., min_length=1, max_length=255)
    start_date: date | None = None
    due_date: date | None = None
    description: str | None = Field(None, max_length=5000)
    status: BatchStatus = BatchStatus.ACTIVE


class BatchRead(BaseModel):
    id: int
    name: str
    start_date: date | None
    due_date: date | None
    status: str
    description: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentCreate(BaseModel):
    """A document attached to a batch: a URL, library ids, or both."""
    title: str = Field(..., min_length=1, max_length=500)
    url: str | None = None
    drive_id: str | None = Field(None, max_length=255)
    item_id: str | None = Field(None, max_length=255)
    source: DocumentSource | None = None
    version: int = Field(1, ge=1)
    requires_signature: bool = False


class DocumentRead(BaseModel):
    id: int
    batch_id: int
    title: str
    url: str | None
    drive_id: str | None
    item_id: str | None
    source: str | None
    version: int
    requires_signature: bool

    model_config = {"from_attributes": True}


class RecipientCreate(BaseModel):
    email: EmailStr
    user_principal: str | None = None
    display_name: str | None = None
    business_id: int | None = None
    department: str | None = None
    job_title: str | None = None
    location: str | None = None
    primary_group: str | None = None


class RecipientRead(BaseModel):
    id: int
    batch_id: int
    email: str
    user_principal: str | None
    display_name: str | None
    business_id: int | None
    department: str | None
    job_title: str | None
    location: str | None
    primary_group: str | None

    model_config = {"from_attributes": True}


class BusinessCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str | None = Field(None, max_length=50)
    description: str | None = None
    is_active: bool = True


class BusinessRead(BaseModel):
    id: int
    name: str
    code: str | None
    is_active: bool
    description: str | None

    model_config = {"from_attributes": True}


class ProgressRead(BaseModel):
    acknowledged: int
    total: int
    percent: int

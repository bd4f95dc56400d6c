"""Pydantic schemas for acknowledgements."""

from pydantic import BaseModel, ConfigDict, Field


class AckCreate(BaseModel):
    """Acknowledgement submission. Accepts the portal's camelCase field names."""
    model_config = ConfigDict(populate_by_name=True)

    batch_id: int = Field(..., alias="batchId")
    document_id: int = Field(..., alias="documentId")
    email: str = Field(..., min_length=1, max_length=255)


class AckResponse(BaseModel):
    ok: bool = True


class AcknowledgedIds(BaseModel):
    """Document ids a user has acknowledged in a batch."""
    ids: list[int]

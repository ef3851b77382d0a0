from datetime import datetime

from pydantic import BaseModel, Field


class ExclusiveRequestResponse(BaseModel):
    id: str
    purchase_id: str
    user_id: str
    beat_id: str
    price: float
    status: str
    admin_notes: str | None = None
    payment_method: str | None = None
    payment_id: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExclusiveApproveRequest(BaseModel):
    admin_notes: str = Field(default="", max_length=1000)


class ExclusiveRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)

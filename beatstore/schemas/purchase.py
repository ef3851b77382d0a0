from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from beatstore.schemas.common import PaginatedResponse


class CheckoutRequest(BaseModel):
    beat_id: str
    payment_method: Literal["card", "paypal", "bank_transfer"] = "card"
    transaction_id: str | None = Field(default=None, max_length=255)
    bank_reference: str | None = Field(default=None, max_length=255)


class PurchaseResponse(BaseModel):
    id: str
    user_id: str
    beat_id: str
    price: float
    beat_title: str
    beat_producer: str
    beat_audio_url: str | None = None
    beat_image_url: str | None = None
    is_exclusive: bool
    status: str
    purchased_at: datetime
    approved_at: datetime | None = None
    approved_by: str | None = None
    completed_at: datetime | None = None
    rejected_at: datetime | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class PurchaseListResponse(PaginatedResponse):
    purchases: list[PurchaseResponse]


class OwnershipResponse(BaseModel):
    beat_id: str
    owned: bool


class CheckoutResponse(BaseModel):
    purchase: PurchaseResponse
    payment_id: str
    payment_status: str
    exclusive_request_id: str | None = None

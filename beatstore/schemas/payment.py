from datetime import datetime

from pydantic import BaseModel, Field

from beatstore.schemas.common import PaginatedResponse


class PaymentResponse(BaseModel):
    id: str
    purchase_id: str
    customer_id: str
    amount: float
    currency: str
    payment_method: str
    status: str
    transaction_id: str | None = None
    bank_reference: str | None = None
    failure_reason: str | None = None
    notes: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentListResponse(PaginatedResponse):
    payments: list[PaymentResponse]


class PaymentConfirmRequest(BaseModel):
    transaction_id: str | None = Field(default=None, max_length=255)


class PaymentFailRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentRefundRequest(BaseModel):
    notes: str = Field(default="", max_length=1000)


class ProviderCallback(BaseModel):
    """Provider notification body: ``(transaction_id, amount, currency, status)``."""

    transaction_id: str = Field(..., min_length=1, max_length=255)
    amount: str | float | None = None
    currency: str | None = Field(default=None, max_length=3)
    status: str = Field(..., min_length=1, max_length=20)


class CallbackAck(BaseModel):
    received: bool = True
    outcome: str

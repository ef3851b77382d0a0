"""Checkout and the customer's purchase history."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.auth import get_current_user_id
from beatstore.core.exceptions import BeatstoreError, CheckoutDeclinedError, PurchaseNotFoundError
from beatstore.database import get_db
from beatstore.schemas.purchase import (
    CheckoutRequest,
    CheckoutResponse,
    OwnershipResponse,
    PurchaseListResponse,
    PurchaseResponse,
)
from beatstore.services import checkout_service, purchase_ledger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["purchases"])


@router.post("/checkout", response_model=CheckoutResponse, status_code=201)
async def checkout(
    req: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    try:
        result = await checkout_service.checkout(
            db,
            current_user,
            req.beat_id,
            req.payment_method,
            transaction_id=req.transaction_id,
            bank_reference=req.bank_reference,
        )
    except BeatstoreError as exc:
        if exc.retryable:
            raise
        logger.info(
            "Checkout declined for user=%s beat=%s: %s %s",
            current_user, req.beat_id, exc.error_code, exc.detail,
        )
        raise CheckoutDeclinedError(exc.error_code) from exc

    return CheckoutResponse(
        purchase=PurchaseResponse.model_validate(result.purchase),
        payment_id=result.payment.id,
        payment_status=result.payment.status,
        exclusive_request_id=result.exclusive_request.id if result.exclusive_request else None,
    )


@router.get("/purchases/my", response_model=PurchaseListResponse)
async def my_purchases(
    status: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    purchases, total = await purchase_ledger.list_purchases(db, current_user, status, page, page_size)
    return PurchaseListResponse(
        total=total,
        page=page,
        page_size=page_size,
        purchases=[PurchaseResponse.model_validate(p) for p in purchases],
    )


@router.get("/purchases/owns/{beat_id}", response_model=OwnershipResponse)
async def owns_beat(
    beat_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    owned = await purchase_ledger.user_owns_beat(db, current_user, beat_id)
    return OwnershipResponse(beat_id=beat_id, owned=owned)


@router.get("/purchases/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    purchase_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: str = Depends(get_current_user_id),
):
    purchase = await purchase_ledger.get_purchase(db, purchase_id)
    if purchase.user_id != current_user:
        raise PurchaseNotFoundError(purchase_id)
    return purchase

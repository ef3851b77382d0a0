"""Admin payment screen: list, manually confirm or fail, refund."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.auth import get_current_admin_id
from beatstore.database import get_db
from beatstore.schemas.payment import (
    PaymentConfirmRequest,
    PaymentFailRequest,
    PaymentListResponse,
    PaymentRefundRequest,
    PaymentResponse,
)
from beatstore.services import payment_service

router = APIRouter(prefix="/admin/payments", tags=["admin"])


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    status: str | None = None,
    payment_method: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    payments, total = await payment_service.list_payments(db, status, payment_method, page, page_size)
    return PaymentListResponse(
        total=total,
        page=page,
        page_size=page_size,
        payments=[PaymentResponse.model_validate(p) for p in payments],
    )


@router.post("/{payment_id}/confirm", response_model=PaymentResponse)
async def confirm_payment(
    payment_id: str,
    req: PaymentConfirmRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await payment_service.confirm_payment(
        db, payment_id, transaction_id=req.transaction_id, approved_by=admin_id,
    )


@router.post("/{payment_id}/fail", response_model=PaymentResponse)
async def fail_payment(
    payment_id: str,
    req: PaymentFailRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await payment_service.fail_payment(db, payment_id, req.reason, actor_id=admin_id)


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: str,
    req: PaymentRefundRequest,
    db: AsyncSession = Depends(get_db),
    admin_id: str = Depends(get_current_admin_id),
):
    return await payment_service.refund_payment(db, payment_id, admin_id, req.notes)

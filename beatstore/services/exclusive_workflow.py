"""Manual approval of exclusive beat purchases.

An exclusive beat may be sold to one customer, ever.  Checkout opens a
pending ``ExclusivePurchaseRequest`` beside the pending purchase; an admin
approves one request per beat, and the sale completes only once that
request also has an approved payment.  Completion rejects every competing
request and purchase in the same transaction.

All mutations run under the beat's ledger lock, so concurrent approvals of
two requests for one beat are serialised and the second one sees the first.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import (
    ExclusiveRequestNotFoundError,
    ExclusivityViolationError,
    InvalidTransitionError,
)
from beatstore.core.locking import beat_lock_key, ledger_transaction
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import Purchase
from beatstore.services import audit_service, catalog_service, purchase_ledger

logger = logging.getLogger(__name__)


async def get_request(db: AsyncSession, request_id: str) -> ExclusivePurchaseRequest:
    result = await db.execute(
        select(ExclusivePurchaseRequest).where(ExclusivePurchaseRequest.id == request_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise ExclusiveRequestNotFoundError(request_id)
    return request


async def _load_request_locked(db: AsyncSession, request_id: str) -> ExclusivePurchaseRequest:
    result = await db.execute(
        select(ExclusivePurchaseRequest)
        .where(ExclusivePurchaseRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise ExclusiveRequestNotFoundError(request_id)
    return request


async def get_request_for_purchase(db: AsyncSession, purchase_id: str) -> ExclusivePurchaseRequest | None:
    result = await db.execute(
        select(ExclusivePurchaseRequest)
        .where(ExclusivePurchaseRequest.purchase_id == purchase_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_requests(
    db: AsyncSession,
    status_filter: str | None = None,
    beat_id: str | None = None,
) -> list[ExclusivePurchaseRequest]:
    """Requests oldest first, the order an admin works through them."""
    query = select(ExclusivePurchaseRequest)
    if status_filter:
        query = query.where(ExclusivePurchaseRequest.status == status_filter)
    if beat_id:
        query = query.where(ExclusivePurchaseRequest.beat_id == beat_id)
    result = await db.execute(query.order_by(ExclusivePurchaseRequest.created_at.asc()))
    return list(result.scalars().all())


async def _approved_payment(db: AsyncSession, purchase_id: str) -> PaymentRecord | None:
    result = await db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.purchase_id == purchase_id, PaymentRecord.status == "approved")
        .order_by(PaymentRecord.approved_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Checkout hook
# ---------------------------------------------------------------------------

async def open_request_locked(
    db: AsyncSession, purchase: Purchase, payment_method: str | None = None,
) -> ExclusivePurchaseRequest:
    """Shadow a freshly created exclusive purchase with a pending request."""
    if not purchase.is_exclusive:
        raise ExclusivityViolationError(purchase.beat_id, f"purchase {purchase.id} is not exclusive")
    request = ExclusivePurchaseRequest(
        purchase_id=purchase.id,
        user_id=purchase.user_id,
        beat_id=purchase.beat_id,
        price=purchase.price,
        status="pending",
        payment_method=payment_method,
    )
    db.add(request)
    await db.flush()
    logger.info("Exclusive request %s opened for beat %s by user %s", request.id, purchase.beat_id, purchase.user_id)
    return request


# ---------------------------------------------------------------------------
# Admin decisions
# ---------------------------------------------------------------------------

async def approve_request(
    db: AsyncSession, request_id: str, admin_id: str, admin_notes: str = "",
) -> ExclusivePurchaseRequest:
    """pending -> approved. At most one approved or completed request per beat."""
    request = await get_request(db, request_id)
    async with ledger_transaction(db, beat_lock_key(request.beat_id)):
        request = await _load_request_locked(db, request_id)
        if request.status != "pending":
            raise InvalidTransitionError("ExclusivePurchaseRequest", request.id, request.status, "approve")

        claimed = [
            other for other in await list_requests(db, beat_id=request.beat_id)
            if other.id != request.id and other.status in ("approved", "completed")
        ]
        if claimed:
            raise ExclusivityViolationError(
                request.beat_id, f"request {claimed[0].id} is already {claimed[0].status}",
            )

        purchase = await purchase_ledger.load_purchase_for_update(db, request.purchase_id)
        await purchase_ledger.approve_purchase_locked(db, purchase, admin_id)
        if admin_notes:
            request.admin_notes = admin_notes
        await catalog_service.set_beat_hidden(db, request.beat_id, True)
        await audit_service.log_event(
            db,
            "exclusive.approved",
            actor_id=admin_id,
            subject_type="exclusive_request",
            subject_id=request.id,
            details={"beat_id": request.beat_id, "purchase_id": request.purchase_id, "notes": admin_notes},
        )
    logger.info("Exclusive request %s approved by %s", request.id, admin_id)
    return request


async def complete_locked(
    db: AsyncSession,
    request: ExclusivePurchaseRequest,
    payment: PaymentRecord,
    actor_id: str | None = None,
) -> list[Purchase]:
    """Finalize the sale for an approved, paid request. Caller holds the beat lock."""
    _, rejected = await purchase_ledger.finalize_exclusive_locked(db, request.beat_id, request.purchase_id)
    request.payment_id = payment.id
    request.payment_method = request.payment_method or payment.payment_method
    await db.flush()

    await audit_service.log_event(
        db,
        "exclusive.completed",
        actor_id=actor_id,
        subject_type="exclusive_request",
        subject_id=request.id,
        details={
            "beat_id": request.beat_id,
            "purchase_id": request.purchase_id,
            "payment_id": payment.id,
            "rejected_purchases": [p.id for p in rejected],
        },
    )
    return rejected


async def confirm_and_complete(
    db: AsyncSession, request_id: str, actor_id: str | None = None,
) -> ExclusivePurchaseRequest:
    """approved -> completed, once the purchase has an approved payment."""
    request = await get_request(db, request_id)
    async with ledger_transaction(db, beat_lock_key(request.beat_id)):
        request = await _load_request_locked(db, request_id)
        if request.status == "completed":
            return request
        if request.status != "approved":
            raise InvalidTransitionError("ExclusivePurchaseRequest", request.id, request.status, "complete")

        payment = await _approved_payment(db, request.purchase_id)
        if payment is None:
            raise InvalidTransitionError(
                "ExclusivePurchaseRequest", request.id, "approved (awaiting payment)", "complete",
            )

        await complete_locked(db, request, payment, actor_id=actor_id)
    logger.info("Exclusive request %s completed with payment %s", request.id, payment.id)
    return request


async def reject_request(
    db: AsyncSession, request_id: str, admin_id: str, reason: str,
) -> ExclusivePurchaseRequest:
    """pending | approved -> rejected, together with the linked purchase."""
    request = await get_request(db, request_id)
    async with ledger_transaction(db, beat_lock_key(request.beat_id)):
        request = await _load_request_locked(db, request_id)
        if request.status not in ("pending", "approved"):
            raise InvalidTransitionError("ExclusivePurchaseRequest", request.id, request.status, "reject")

        was_approved = request.status == "approved"
        purchase = await purchase_ledger.load_purchase_for_update(db, request.purchase_id)
        await purchase_ledger.reject_purchase_locked(db, purchase, admin_id, reason)
        request.admin_notes = reason
        if was_approved:
            # The beat was taken off the storefront on approval; offer it again
            await catalog_service.set_beat_hidden(db, request.beat_id, False)
        await audit_service.log_event(
            db,
            "exclusive.rejected",
            actor_id=admin_id,
            subject_type="exclusive_request",
            subject_id=request.id,
            details={"beat_id": request.beat_id, "purchase_id": request.purchase_id, "reason": reason},
        )
    logger.info("Exclusive request %s rejected by %s: %s", request.id, admin_id, reason)
    return request

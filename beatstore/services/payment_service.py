"""Payment records: money movement tracked beside, not inside, the purchase.

A provider callback can arrive before, after, or instead of the admin
decision on a purchase, so a ``PaymentRecord`` has its own state machine::

    pending -> approved -> refunded
    pending -> failed

Every transition runs under the ledger lock of the owning purchase and
forwards the outcome to ``purchase_ledger`` in the same transaction.
Provider callbacks enter through ``handle_provider_callback``, an
idempotent command keyed by ``(transaction_id, status)``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.config import settings
from beatstore.core.exceptions import (
    InvalidTransitionError,
    PaymentAmountMismatchError,
    PaymentRecordNotFoundError,
    PurchaseNotPendingError,
)
from beatstore.core.locking import ledger_transaction
from beatstore.models.payment import PaymentRecord
from beatstore.models.payment_callback import PaymentCallback
from beatstore.models.purchase import TERMINAL_PURCHASE_STATUSES, Purchase
from beatstore.services import audit_service, catalog_service, exclusive_workflow, purchase_ledger

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("card", "paypal", "bank_transfer")
PROVIDER_ACTOR = "payment-provider"

# Provider status -> local command
_SUCCESS_STATUSES = {"succeeded", "success", "captured", "paid"}
_FAILURE_STATUSES = {"failed", "canceled", "cancelled", "declined"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _append(existing: str | None, note: str | None) -> str:
    if not note:
        return existing or ""
    return f"{existing}\n{note}".strip() if existing else note


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_payment(db: AsyncSession, payment_id: str) -> PaymentRecord:
    result = await db.execute(select(PaymentRecord).where(PaymentRecord.id == payment_id))
    payment = result.scalar_one_or_none()
    if payment is None:
        raise PaymentRecordNotFoundError(payment_id)
    return payment


async def _load_payment_locked(db: AsyncSession, payment_id: str) -> PaymentRecord:
    result = await db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.id == payment_id)
        .execution_options(populate_existing=True)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise PaymentRecordNotFoundError(payment_id)
    return payment


async def find_by_transaction(db: AsyncSession, transaction_id: str) -> PaymentRecord | None:
    result = await db.execute(
        select(PaymentRecord)
        .where(PaymentRecord.transaction_id == transaction_id)
        .order_by(PaymentRecord.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_payments(
    db: AsyncSession,
    status_filter: str | None = None,
    payment_method: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[PaymentRecord], int]:
    """Payments newest first, for the admin payment screen."""
    query = select(PaymentRecord)
    count_query = select(func.count(PaymentRecord.id))
    if status_filter:
        query = query.where(PaymentRecord.status == status_filter)
        count_query = count_query.where(PaymentRecord.status == status_filter)
    if payment_method:
        query = query.where(PaymentRecord.payment_method == payment_method)
        count_query = count_query.where(PaymentRecord.payment_method == payment_method)

    total = (await db.execute(count_query)).scalar() or 0
    query = query.order_by(PaymentRecord.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# open
# ---------------------------------------------------------------------------

async def open_payment_locked(
    db: AsyncSession,
    purchase: Purchase,
    customer_id: str,
    amount: float | Decimal | str,
    payment_method: str,
    *,
    transaction_id: str | None = None,
    bank_reference: str | None = None,
) -> PaymentRecord:
    """Create a pending payment for a live purchase.

    Re-opening with the same amount and method while a pending record exists
    returns that record, so a retried checkout does not stack attempts.
    """
    if purchase.status in TERMINAL_PURCHASE_STATUSES:
        raise PurchaseNotPendingError(purchase.id, purchase.status)
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(f"Unknown payment method: {payment_method}")

    money = purchase_ledger.to_money(amount)
    if money != purchase_ledger.to_money(purchase.price):
        raise PaymentAmountMismatchError(purchase.id, str(purchase.price), str(money))

    result = await db.execute(
        select(PaymentRecord)
        .where(
            PaymentRecord.purchase_id == purchase.id,
            PaymentRecord.status.in_(("pending", "approved")),
        )
        .execution_options(populate_existing=True)
    )
    for live in result.scalars().all():
        if live.status == "pending" and live.payment_method == payment_method:
            if transaction_id and not live.transaction_id:
                live.transaction_id = transaction_id
            if bank_reference and not live.bank_reference:
                live.bank_reference = bank_reference
            return live
        raise InvalidTransitionError("Purchase", purchase.id, f"payment {live.id} {live.status}", "open_payment")

    payment = PaymentRecord(
        purchase_id=purchase.id,
        customer_id=customer_id,
        amount=money,
        currency=settings.payment_currency,
        payment_method=payment_method,
        status="pending",
        transaction_id=transaction_id,
        bank_reference=bank_reference,
    )
    db.add(payment)
    await db.flush()

    if purchase.is_exclusive:
        request = await exclusive_workflow.get_request_for_purchase(db, purchase.id)
        if request is not None:
            request.payment_id = payment.id
            request.payment_method = payment_method

    logger.info(
        "Payment %s opened for purchase %s: %s %s via %s",
        payment.id, purchase.id, money, payment.currency, payment_method,
    )
    return payment


async def open_payment(
    db: AsyncSession,
    purchase_id: str,
    customer_id: str,
    amount: float | Decimal | str,
    payment_method: str,
    *,
    transaction_id: str | None = None,
    bank_reference: str | None = None,
) -> PaymentRecord:
    purchase = await purchase_ledger.get_purchase(db, purchase_id)
    async with ledger_transaction(db, purchase_ledger.lock_key_for(purchase)):
        purchase = await purchase_ledger.load_purchase_for_update(db, purchase_id)
        payment = await open_payment_locked(
            db, purchase, customer_id, amount, payment_method,
            transaction_id=transaction_id, bank_reference=bank_reference,
        )
    return payment


# ---------------------------------------------------------------------------
# confirm / fail / refund
# ---------------------------------------------------------------------------

async def confirm_payment(
    db: AsyncSession,
    payment_id: str,
    transaction_id: str | None = None,
    approved_by: str | None = None,
) -> PaymentRecord:
    """pending -> approved, then record the success on the purchase.

    Confirming an already approved record returns it unchanged.  When the
    purchase is exclusive and its request is already approved, the sale is
    finalized in the same transaction.
    """
    payment = await get_payment(db, payment_id)
    purchase = await purchase_ledger.get_purchase(db, payment.purchase_id)

    async with ledger_transaction(db, purchase_ledger.lock_key_for(purchase)):
        payment = await _load_payment_locked(db, payment_id)
        if payment.status == "approved":
            logger.debug("Payment %s already approved", payment.id)
            return payment
        if payment.status != "pending":
            raise InvalidTransitionError("PaymentRecord", payment.id, payment.status, "approve")

        purchase = await purchase_ledger.load_purchase_for_update(db, payment.purchase_id)
        await purchase_ledger.apply_payment_outcome_locked(
            db, purchase, "success", note=f"Payment {payment.id} approved",
        )

        payment.status = "approved"
        payment.approved_at = _utcnow()
        payment.approved_by = approved_by or PROVIDER_ACTOR
        if transaction_id:
            payment.transaction_id = transaction_id
        await db.flush()

        completed_request = None
        if purchase.is_exclusive:
            request = await exclusive_workflow.get_request_for_purchase(db, purchase.id)
            if request is not None and request.status == "approved":
                await exclusive_workflow.complete_locked(db, request, payment, actor_id=payment.approved_by)
                completed_request = request.id

        await audit_service.log_event(
            db,
            "payment.approved",
            actor_id=payment.approved_by,
            subject_type="payment",
            subject_id=payment.id,
            details={
                "purchase_id": purchase.id,
                "amount": str(payment.amount),
                "transaction_id": payment.transaction_id,
                "completed_request": completed_request,
            },
        )

    logger.info("Payment %s approved by %s (purchase %s -> %s)", payment.id, payment.approved_by, purchase.id, purchase.status)
    return payment


async def fail_payment(
    db: AsyncSession,
    payment_id: str,
    reason: str,
    actor_id: str | None = None,
) -> PaymentRecord:
    """pending -> failed, then reject the purchase.

    If the purchase is already terminal the payment still fails, and the
    mismatch is written to the audit log as an anomaly instead of raising.
    """
    payment = await get_payment(db, payment_id)
    purchase = await purchase_ledger.get_purchase(db, payment.purchase_id)

    async with ledger_transaction(db, purchase_ledger.lock_key_for(purchase)):
        payment = await _load_payment_locked(db, payment_id)
        if payment.status == "failed":
            return payment
        if payment.status != "pending":
            raise InvalidTransitionError("PaymentRecord", payment.id, payment.status, "fail")

        now = _utcnow()
        payment.status = "failed"
        payment.failed_at = now
        payment.failure_reason = reason
        payment.notes = _append(payment.notes, reason)

        purchase = await purchase_ledger.load_purchase_for_update(db, payment.purchase_id)
        request = None
        if purchase.is_exclusive:
            request = await exclusive_workflow.get_request_for_purchase(db, purchase.id)
        was_approved = request is not None and request.status == "approved"

        try:
            await purchase_ledger.apply_payment_outcome_locked(db, purchase, "failure", note=reason)
        except InvalidTransitionError:
            logger.warning(
                "Payment %s failed after purchase %s became %s; not retried",
                payment.id, purchase.id, purchase.status,
            )
            await audit_service.log_event(
                db,
                "payment.anomaly",
                actor_id=actor_id or PROVIDER_ACTOR,
                subject_type="payment",
                subject_id=payment.id,
                details={"purchase_id": purchase.id, "purchase_status": purchase.status, "reason": reason},
                severity="warning",
            )
        else:
            if was_approved:
                await catalog_service.set_beat_hidden(db, purchase.beat_id, False)
            await audit_service.log_event(
                db,
                "payment.failed",
                actor_id=actor_id or PROVIDER_ACTOR,
                subject_type="payment",
                subject_id=payment.id,
                details={"purchase_id": purchase.id, "reason": reason},
            )

    logger.info("Payment %s failed: %s", payment.id, reason)
    return payment


async def refund_payment(
    db: AsyncSession,
    payment_id: str,
    admin_id: str,
    notes: str = "",
) -> PaymentRecord:
    """approved -> refunded. The purchase keeps its status; the refund is noted on it."""
    payment = await get_payment(db, payment_id)
    purchase = await purchase_ledger.get_purchase(db, payment.purchase_id)

    async with ledger_transaction(db, purchase_ledger.lock_key_for(purchase)):
        payment = await _load_payment_locked(db, payment_id)
        if payment.status != "approved":
            raise InvalidTransitionError("PaymentRecord", payment.id, payment.status, "refund")

        payment.status = "refunded"
        payment.refunded_at = _utcnow()
        payment.notes = _append(payment.notes, notes)

        purchase = await purchase_ledger.load_purchase_for_update(db, payment.purchase_id)
        purchase.notes = _append(
            purchase.notes,
            f"Payment {payment.id} refunded by {admin_id}" + (f": {notes}" if notes else ""),
        )
        await audit_service.log_event(
            db,
            "payment.refunded",
            actor_id=admin_id,
            subject_type="payment",
            subject_id=payment.id,
            details={"purchase_id": purchase.id, "amount": str(payment.amount), "notes": notes},
        )

    logger.info("Payment %s refunded by %s", payment.id, admin_id)
    return payment


# ---------------------------------------------------------------------------
# Provider callbacks
# ---------------------------------------------------------------------------

async def _store_callback(
    db: AsyncSession,
    *,
    transaction_id: str,
    status: str,
    amount: Decimal | None,
    currency: str | None,
    payment_id: str | None,
    outcome: str,
    detail: str = "",
) -> bool:
    """Persist the callback key. Returns False if another delivery got there first."""
    db.add(PaymentCallback(
        transaction_id=transaction_id,
        status=status,
        amount=amount,
        currency=currency,
        payment_record_id=payment_id,
        outcome=outcome,
        detail=detail,
    ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False
    return True


async def _record_anomaly(
    db: AsyncSession,
    *,
    transaction_id: str,
    status: str,
    amount: Decimal | None,
    currency: str | None,
    payment_id: str | None,
    detail: str,
) -> dict[str, Any]:
    logger.warning("Payment callback anomaly: transaction=%s status=%s: %s", transaction_id, status, detail)
    await audit_service.log_event(
        db,
        "payment.callback_anomaly",
        actor_id=PROVIDER_ACTOR,
        subject_type="payment",
        subject_id=payment_id,
        details={
            "transaction_id": transaction_id,
            "status": status,
            "amount": str(amount) if amount is not None else None,
            "currency": currency,
            "detail": detail,
        },
        severity="warning",
    )
    stored = await _store_callback(
        db,
        transaction_id=transaction_id, status=status, amount=amount, currency=currency,
        payment_id=payment_id, outcome="anomaly", detail=detail,
    )
    return {
        "outcome": "anomaly" if stored else "duplicate",
        "payment_id": payment_id,
        "detail": detail,
    }


async def handle_provider_callback(
    db: AsyncSession,
    transaction_id: str,
    amount: float | Decimal | str | None,
    currency: str | None,
    status: str,
) -> dict[str, Any]:
    """Apply an at-least-once provider notification exactly once.

    Never raises a domain error back to the provider: unknown transactions,
    amount or currency mismatches and callbacks after a terminal decision
    are logged, audited and stored with outcome ``anomaly``.  Only
    ``TransactionTimeoutError`` propagates, so the provider retries.
    """
    status = (status or "").lower()
    existing = await db.execute(
        select(PaymentCallback).where(
            PaymentCallback.transaction_id == transaction_id,
            PaymentCallback.status == status,
        )
    )
    previous = existing.scalar_one_or_none()
    if previous is not None:
        logger.info("Duplicate payment callback %s/%s ignored", transaction_id, status)
        return {"outcome": "duplicate", "payment_id": previous.payment_record_id, "detail": previous.outcome}

    try:
        money = purchase_ledger.to_money(amount) if amount is not None else None
    except (InvalidOperation, ValueError):
        money = None
    currency = currency.upper() if currency else None
    common = {"transaction_id": transaction_id, "status": status, "amount": money, "currency": currency}

    payment = await find_by_transaction(db, transaction_id)
    if payment is None:
        return await _record_anomaly(db, payment_id=None, detail="unknown transaction id", **common)

    if money is None or money != purchase_ledger.to_money(payment.amount):
        return await _record_anomaly(
            db, payment_id=payment.id,
            detail=f"amount mismatch: expected {payment.amount}, got {amount}", **common,
        )
    if currency != (payment.currency or "").upper():
        return await _record_anomaly(
            db, payment_id=payment.id,
            detail=f"currency mismatch: expected {payment.currency}, got {currency}", **common,
        )

    # A refused transition rolls the session back and expires loaded rows
    payment_id = payment.id
    try:
        if status in _SUCCESS_STATUSES:
            payment = await confirm_payment(db, payment_id, transaction_id=transaction_id)
        elif status in _FAILURE_STATUSES:
            payment = await fail_payment(db, payment_id, f"Provider reported {status}")
        else:
            return await _record_anomaly(db, payment_id=payment_id, detail=f"unhandled status {status}", **common)
    except (InvalidTransitionError, PaymentAmountMismatchError) as exc:
        return await _record_anomaly(db, payment_id=payment_id, detail=str(exc.detail), **common)

    stored = await _store_callback(db, payment_id=payment.id, outcome="applied", **common)
    return {
        "outcome": "applied" if stored else "duplicate",
        "payment_id": payment.id,
        "detail": payment.status,
    }

"""Purchase ledger: the authoritative record of who wants or owns which beat.

State machine (``Purchase.status``)::

    pending --payment success (ordinary beat)--------------> completed
    pending --admin approves (exclusive)--> approved --finalize--> completed
    pending | approved --payment failure / admin rejects / exclusive lost--> rejected

``completed`` and ``rejected`` are terminal; only ``notes`` may change after
that.  Functions suffixed ``_locked`` expect the caller to hold the ledger
lock for the purchase (see ``beatstore.core.locking``) and leave the commit
to that caller; the unsuffixed functions take the lock and commit.

For exclusive beats the ledger also mirrors purchase status onto the linked
``ExclusivePurchaseRequest`` so both rows change in the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import (
    DuplicateActivePurchaseError,
    ExclusivityViolationError,
    InvalidTransitionError,
    PurchaseNotFoundError,
)
from beatstore.core.locking import beat_lock_key, is_sqlite, ledger_transaction, purchase_lock_key
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import (
    ACTIVE_PURCHASE_STATUSES,
    TERMINAL_PURCHASE_STATUSES,
    Purchase,
)
from beatstore.services.catalog_service import BeatSnapshot

logger = logging.getLogger(__name__)

PAYMENT_OUTCOMES = ("success", "failure")
_CENTS = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: float | int | str | Decimal) -> Decimal:
    """Coerce a value to Decimal with 2 decimal places."""
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _append_note(purchase: Purchase, note: str | None) -> None:
    if not note:
        return
    purchase.notes = f"{purchase.notes}\n{note}".strip() if purchase.notes else note


def lock_key_for(purchase: Purchase) -> str:
    return purchase_lock_key(purchase.user_id, purchase.beat_id, bool(purchase.is_exclusive))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_purchase(db: AsyncSession, purchase_id: str) -> Purchase:
    result = await db.execute(select(Purchase).where(Purchase.id == purchase_id))
    purchase = result.scalar_one_or_none()
    if purchase is None:
        raise PurchaseNotFoundError(purchase_id)
    return purchase


async def load_purchase_for_update(db: AsyncSession, purchase_id: str) -> Purchase:
    """Re-read a purchase inside a ledger transaction, bypassing stale identity-map state."""
    stmt = (
        select(Purchase)
        .where(Purchase.id == purchase_id)
        .execution_options(populate_existing=True)
    )
    if not is_sqlite:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    purchase = result.scalar_one_or_none()
    if purchase is None:
        raise PurchaseNotFoundError(purchase_id)
    return purchase


async def find_active_purchase(db: AsyncSession, user_id: str, beat_id: str) -> Purchase | None:
    stmt = (
        select(Purchase)
        .where(
            Purchase.user_id == user_id,
            Purchase.beat_id == beat_id,
            Purchase.status.in_(ACTIVE_PURCHASE_STATUSES),
        )
        .order_by(Purchase.purchased_at.asc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    if not is_sqlite:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_purchases_for_beat(db: AsyncSession, beat_id: str, *, lock: bool = False) -> list[Purchase]:
    stmt = (
        select(Purchase)
        .where(Purchase.beat_id == beat_id)
        .order_by(Purchase.purchased_at.asc(), Purchase.id.asc())
        .execution_options(populate_existing=True)
    )
    if lock and not is_sqlite:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_purchases(
    db: AsyncSession,
    user_id: str | None = None,
    status_filter: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Purchase], int]:
    """List purchases, newest first, optionally for one user and/or one status."""
    query = select(Purchase)
    count_query = select(func.count(Purchase.id))

    if user_id:
        query = query.where(Purchase.user_id == user_id)
        count_query = count_query.where(Purchase.user_id == user_id)
    if status_filter:
        query = query.where(Purchase.status == status_filter)
        count_query = count_query.where(Purchase.status == status_filter)

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Purchase.purchased_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def user_owns_beat(db: AsyncSession, user_id: str, beat_id: str) -> bool:
    """A beat is owned once the purchase is completed and backed by an approved payment."""
    result = await db.execute(
        select(func.count(Purchase.id))
        .join(PaymentRecord, PaymentRecord.purchase_id == Purchase.id)
        .where(
            Purchase.user_id == user_id,
            Purchase.beat_id == beat_id,
            Purchase.status == "completed",
            PaymentRecord.status == "approved",
        )
    )
    return (result.scalar() or 0) > 0


# ---------------------------------------------------------------------------
# Request mirroring (exclusive beats)
# ---------------------------------------------------------------------------

async def _mirror_request(
    db: AsyncSession, purchase: Purchase, *, actor_id: str | None, now: datetime,
) -> ExclusivePurchaseRequest | None:
    if not purchase.is_exclusive:
        return None
    result = await db.execute(
        select(ExclusivePurchaseRequest)
        .where(ExclusivePurchaseRequest.purchase_id == purchase.id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None or request.status == purchase.status:
        return request

    request.status = purchase.status
    if purchase.status == "approved":
        request.approved_by = actor_id
        request.approved_at = now
    elif purchase.status == "rejected":
        request.rejected_by = actor_id
        request.rejected_at = now
    elif purchase.status == "completed":
        request.completed_at = now
    return request


async def _void_live_payments(
    db: AsyncSession, purchase: Purchase, reason: str, *, now: datetime,
) -> list[PaymentRecord]:
    """A rejected purchase keeps no live payment: approved ones become refunded, pending ones failed."""
    result = await db.execute(
        select(PaymentRecord)
        .where(
            PaymentRecord.purchase_id == purchase.id,
            PaymentRecord.status.in_(("pending", "approved")),
        )
        .execution_options(populate_existing=True)
    )
    voided = list(result.scalars().all())
    for payment in voided:
        if payment.status == "approved":
            payment.status = "refunded"
            payment.refunded_at = now
            logger.warning(
                "Payment %s refunded: purchase %s rejected after payment was approved",
                payment.id, purchase.id,
            )
        else:
            payment.status = "failed"
            payment.failed_at = now
            payment.failure_reason = reason
        payment.notes = f"{payment.notes}\n{reason}".strip() if payment.notes else reason
    return voided


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

async def stage_purchase_locked(
    db: AsyncSession,
    user_id: str,
    beat_id: str,
    snapshot: BeatSnapshot,
    price: float | Decimal | None = None,
) -> Purchase:
    """Insert a pending purchase after checking the uniqueness invariants."""
    existing = await find_active_purchase(db, user_id, beat_id)
    if existing is not None:
        logger.info(
            "Duplicate checkout refused: user=%s beat=%s existing=%s (%s)",
            user_id, beat_id, existing.id, existing.status,
        )
        raise DuplicateActivePurchaseError(user_id, beat_id, existing.id)

    if snapshot.is_exclusive:
        siblings = await list_purchases_for_beat(db, beat_id, lock=True)
        winner = next((p for p in siblings if p.status == "completed"), None)
        if winner is not None:
            raise ExclusivityViolationError(beat_id, "exclusive rights have already been sold")

    purchase = Purchase(
        user_id=user_id,
        beat_id=beat_id,
        price=to_money(snapshot.price if price is None else price),
        beat_title=snapshot.title,
        beat_producer=snapshot.producer,
        beat_audio_url=snapshot.audio_url,
        beat_image_url=snapshot.image_url,
        is_exclusive=snapshot.is_exclusive,
        status="pending",
        purchased_at=_utcnow(),
    )
    db.add(purchase)
    await db.flush()
    logger.info(
        "Purchase created: %s user=%s beat=%s exclusive=%s $%s",
        purchase.id, user_id, beat_id, snapshot.is_exclusive, purchase.price,
    )
    return purchase


async def create_purchase(
    db: AsyncSession,
    user_id: str,
    beat_id: str,
    snapshot: BeatSnapshot,
    price: float | Decimal | None = None,
) -> Purchase:
    """Create a pending purchase. Raises DuplicateActivePurchaseError on a live duplicate."""
    key = purchase_lock_key(user_id, beat_id, snapshot.is_exclusive)
    async with ledger_transaction(db, key):
        purchase = await stage_purchase_locked(db, user_id, beat_id, snapshot, price)
    return purchase


# ---------------------------------------------------------------------------
# recordPayment
# ---------------------------------------------------------------------------

async def apply_payment_outcome_locked(
    db: AsyncSession, purchase: Purchase, outcome: str, *, note: str | None = None,
) -> Purchase:
    """Advance a purchase for a payment outcome. Idempotent per (purchase, outcome).

    A success completes an ordinary purchase; an exclusive purchase only
    records it and waits for ``finalize_exclusive``.  A failure rejects the
    purchase.  Anything arriving after a different terminal decision is an
    ``InvalidTransitionError`` for the caller to report.
    """
    if outcome not in PAYMENT_OUTCOMES:
        raise ValueError(f"Unknown payment outcome: {outcome}")

    if purchase.payment_outcome == outcome:
        logger.debug("Payment %s already applied to purchase %s", outcome, purchase.id)
        return purchase

    if purchase.status in TERMINAL_PURCHASE_STATUSES:
        raise InvalidTransitionError("Purchase", purchase.id, purchase.status, f"payment_{outcome}")

    now = _utcnow()
    purchase.payment_outcome = outcome
    if outcome == "failure":
        purchase.status = "rejected"
        purchase.rejected_at = now
        _append_note(purchase, note or "Payment failed")
        await _void_live_payments(db, purchase, "Purchase rejected after payment failure", now=now)
        await _mirror_request(db, purchase, actor_id=None, now=now)
    elif not purchase.is_exclusive:
        purchase.status = "completed"
        purchase.completed_at = now
        _append_note(purchase, note)
    else:
        _append_note(purchase, note)

    await db.flush()
    logger.info("Purchase %s: payment %s -> %s", purchase.id, outcome, purchase.status)
    return purchase


async def record_payment(
    db: AsyncSession, purchase_id: str, outcome: str, *, note: str | None = None,
) -> Purchase:
    purchase = await get_purchase(db, purchase_id)
    async with ledger_transaction(db, lock_key_for(purchase)):
        purchase = await load_purchase_for_update(db, purchase_id)
        await apply_payment_outcome_locked(db, purchase, outcome, note=note)
    return purchase


# ---------------------------------------------------------------------------
# Admin transitions
# ---------------------------------------------------------------------------

async def approve_purchase_locked(db: AsyncSession, purchase: Purchase, admin_id: str) -> Purchase:
    """pending -> approved (exclusive beats only)."""
    if not purchase.is_exclusive or purchase.status != "pending":
        raise InvalidTransitionError("Purchase", purchase.id, purchase.status, "approve")
    now = _utcnow()
    purchase.status = "approved"
    purchase.approved_at = now
    purchase.approved_by = admin_id
    await _mirror_request(db, purchase, actor_id=admin_id, now=now)
    await db.flush()
    return purchase


async def reject_purchase_locked(
    db: AsyncSession, purchase: Purchase, actor_id: str | None, reason: str,
) -> Purchase:
    """pending | approved -> rejected."""
    if purchase.status in TERMINAL_PURCHASE_STATUSES:
        raise InvalidTransitionError("Purchase", purchase.id, purchase.status, "reject")
    now = _utcnow()
    purchase.status = "rejected"
    purchase.rejected_at = now
    _append_note(purchase, reason)
    await _mirror_request(db, purchase, actor_id=actor_id, now=now)
    await _void_live_payments(db, purchase, f"Purchase rejected: {reason}", now=now)
    await db.flush()
    return purchase


async def add_note(db: AsyncSession, purchase_id: str, note: str) -> Purchase:
    """Append to ``notes``; allowed in every state, terminal ones included."""
    purchase = await get_purchase(db, purchase_id)
    async with ledger_transaction(db, lock_key_for(purchase)):
        purchase = await load_purchase_for_update(db, purchase_id)
        _append_note(purchase, note)
    return purchase


# ---------------------------------------------------------------------------
# finalizeExclusive
# ---------------------------------------------------------------------------

async def finalize_exclusive_locked(
    db: AsyncSession, beat_id: str, winning_purchase_id: str,
) -> tuple[Purchase, list[Purchase]]:
    """Complete the winner and reject every other live purchase of the beat.

    Returns ``(winner, rejected_siblings)``.  Replaying a finalisation that
    already happened returns the winner with no further changes.
    """
    siblings = await list_purchases_for_beat(db, beat_id, lock=True)
    winner = next((p for p in siblings if p.id == winning_purchase_id), None)
    if winner is None:
        raise PurchaseNotFoundError(winning_purchase_id)
    if not winner.is_exclusive:
        raise ExclusivityViolationError(beat_id, f"purchase {winner.id} is not an exclusive purchase")

    other_winner = next(
        (p for p in siblings if p.status == "completed" and p.id != winner.id), None,
    )
    if other_winner is not None:
        raise ExclusivityViolationError(
            beat_id, f"already completed by purchase {other_winner.id}",
        )
    if winner.status == "rejected":
        raise InvalidTransitionError("Purchase", winner.id, winner.status, "complete")

    now = _utcnow()
    if winner.status != "completed":
        winner.status = "completed"
        winner.completed_at = now
        await _mirror_request(db, winner, actor_id=winner.approved_by, now=now)

    rejected: list[Purchase] = []
    for purchase in siblings:
        if purchase.id == winner.id or purchase.status not in ("pending", "approved"):
            continue
        purchase.status = "rejected"
        purchase.rejected_at = now
        _append_note(purchase, f"Exclusive rights sold to another customer (purchase {winner.id})")
        await _mirror_request(db, purchase, actor_id=winner.approved_by, now=now)
        await _void_live_payments(db, purchase, "Exclusive rights sold to another customer", now=now)
        rejected.append(purchase)

    await db.flush()
    logger.info(
        "Exclusive beat %s finalized: winner=%s rejected=%s",
        beat_id, winner.id, [p.id for p in rejected],
    )
    return winner, rejected


async def finalize_exclusive(db: AsyncSession, beat_id: str, winning_purchase_id: str) -> Purchase:
    async with ledger_transaction(db, beat_lock_key(beat_id)):
        winner, _ = await finalize_exclusive_locked(db, beat_id, winning_purchase_id)
    return winner

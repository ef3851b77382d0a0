"""Checkout: catalog snapshot, purchase, exclusive request and payment in one transaction."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.locking import ledger_transaction, purchase_lock_key
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import Purchase
from beatstore.services import catalog_service, exclusive_workflow, payment_service, purchase_ledger

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    purchase: Purchase
    payment: PaymentRecord
    exclusive_request: ExclusivePurchaseRequest | None = None


async def checkout(
    db: AsyncSession,
    user_id: str,
    beat_id: str,
    payment_method: str,
    *,
    transaction_id: str | None = None,
    bank_reference: str | None = None,
) -> CheckoutResult:
    """Create the pending purchase and its first payment attempt.

    Nothing is written unless every step succeeds.
    """
    snapshot = await catalog_service.get_beat_snapshot(db, beat_id)
    key = purchase_lock_key(user_id, beat_id, snapshot.is_exclusive)

    async with ledger_transaction(db, key):
        purchase = await purchase_ledger.stage_purchase_locked(db, user_id, beat_id, snapshot)
        request = None
        if snapshot.is_exclusive:
            request = await exclusive_workflow.open_request_locked(db, purchase, payment_method)
        payment = await payment_service.open_payment_locked(
            db, purchase, user_id, purchase.price, payment_method,
            transaction_id=transaction_id, bank_reference=bank_reference,
        )

    logger.info(
        "Checkout: user=%s beat=%s purchase=%s payment=%s%s",
        user_id, beat_id, purchase.id, payment.id,
        f" request={request.id}" if request is not None else "",
    )
    return CheckoutResult(purchase=purchase, payment=payment, exclusive_request=request)

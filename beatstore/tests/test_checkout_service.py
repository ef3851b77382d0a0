"""Service-layer tests for checkout: all-or-nothing staging of purchase, request and payment."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import BeatNotFoundError, DuplicateActivePurchaseError
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import Purchase
from beatstore.services import checkout_service, payment_service


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar()


async def test_ordinary_checkout(db: AsyncSession, make_user, make_beat):
    user, _ = await make_user()
    beat = await make_beat(price=14.5, title="Lo-fi Sunday")

    result = await checkout_service.checkout(db, user.id, beat.id, "card", transaction_id="tx_1")

    assert result.exclusive_request is None
    assert result.purchase.status == "pending"
    assert result.purchase.beat_title == "Lo-fi Sunday"
    assert result.payment.purchase_id == result.purchase.id
    assert result.payment.amount == Decimal("14.50")
    assert result.payment.transaction_id == "tx_1"


async def test_exclusive_checkout_links_request_and_payment(db: AsyncSession, make_user, make_beat):
    user, _ = await make_user()
    beat = await make_beat(price=600, is_exclusive=True)

    result = await checkout_service.checkout(db, user.id, beat.id, "bank_transfer", bank_reference="WIRE-9")

    request = result.exclusive_request
    assert request.purchase_id == result.purchase.id
    assert request.payment_id == result.payment.id
    assert request.price == Decimal("600.00")
    assert result.payment.bank_reference == "WIRE-9"


async def test_failed_checkout_writes_nothing(db: AsyncSession, make_user, make_beat):
    user, _ = await make_user()
    beat = await make_beat(price=600, is_exclusive=True)
    user_id, beat_id = user.id, beat.id

    with pytest.raises(ValueError):
        await checkout_service.checkout(db, user_id, beat_id, "crypto")

    assert await _count(db, Purchase) == 0
    assert await _count(db, ExclusivePurchaseRequest) == 0
    assert await _count(db, PaymentRecord) == 0


async def test_checkout_hidden_beat(db: AsyncSession, make_user, make_beat):
    user, _ = await make_user()
    beat = await make_beat(is_hidden=True)

    with pytest.raises(BeatNotFoundError):
        await checkout_service.checkout(db, user.id, beat.id, "card")


async def test_retry_after_failed_payment(db: AsyncSession, make_user, make_beat):
    user, _ = await make_user()
    beat = await make_beat(price=9.99)
    user_id, beat_id = user.id, beat.id

    first = await checkout_service.checkout(db, user_id, beat_id, "card")
    first_purchase_id, first_payment_id = first.purchase.id, first.payment.id
    with pytest.raises(DuplicateActivePurchaseError):
        await checkout_service.checkout(db, user_id, beat_id, "card")

    await payment_service.fail_payment(db, first_payment_id, "card declined")
    retry = await checkout_service.checkout(db, user_id, beat_id, "paypal")

    assert retry.purchase.id != first_purchase_id
    assert retry.payment.payment_method == "paypal"

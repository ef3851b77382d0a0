"""Tests for /api/v1/checkout and /api/v1/purchases routes."""

import pytest


# ---------------------------------------------------------------------------
# POST /api/v1/checkout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_checkout_requires_auth(client, make_beat):
    beat = await make_beat()
    response = await client.post("/api/v1/checkout", json={"beat_id": beat.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_checkout_creates_pending_purchase(client, make_user, make_beat, auth_header):
    user, token = await make_user()
    beat = await make_beat(price=24.99, title="Late Night")

    response = await client.post(
        "/api/v1/checkout",
        headers=auth_header(token),
        json={"beat_id": beat.id, "payment_method": "paypal", "transaction_id": "tx_web_1"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["purchase"]["status"] == "pending"
    assert body["purchase"]["user_id"] == user.id
    assert body["purchase"]["beat_title"] == "Late Night"
    assert body["purchase"]["price"] == 24.99
    assert body["payment_status"] == "pending"
    assert body["exclusive_request_id"] is None


@pytest.mark.asyncio
async def test_checkout_exclusive_opens_request(client, make_user, make_beat, auth_header):
    _, token = await make_user()
    beat = await make_beat(price=500, is_exclusive=True)

    response = await client.post(
        "/api/v1/checkout",
        headers=auth_header(token),
        json={"beat_id": beat.id, "payment_method": "bank_transfer", "bank_reference": "REF-1"},
    )

    assert response.status_code == 201
    assert response.json()["exclusive_request_id"] is not None


@pytest.mark.asyncio
async def test_duplicate_checkout_is_generic_decline(client, make_user, make_beat, auth_header):
    _, token = await make_user()
    beat = await make_beat()
    payload = {"beat_id": beat.id}

    first = await client.post("/api/v1/checkout", headers=auth_header(token), json=payload)
    second = await client.post("/api/v1/checkout", headers=auth_header(token), json=payload)

    assert first.status_code == 201
    assert second.status_code == 402
    detail = second.json()["detail"]
    assert detail["message"] == "Checkout was declined"
    assert detail["error_code"] == "DUPLICATE_ACTIVE_PURCHASE"


@pytest.mark.asyncio
async def test_checkout_unknown_beat_declined(client, make_user, auth_header):
    _, token = await make_user()
    response = await client.post("/api/v1/checkout", headers=auth_header(token), json={"beat_id": "nope"})

    assert response.status_code == 402
    assert response.json()["detail"]["error_code"] == "BEAT_NOT_FOUND"


@pytest.mark.asyncio
async def test_checkout_rejects_unknown_payment_method(client, make_user, make_beat, auth_header):
    _, token = await make_user()
    beat = await make_beat()
    response = await client.post(
        "/api/v1/checkout",
        headers=auth_header(token),
        json={"beat_id": beat.id, "payment_method": "barter"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkout_timeout_is_retryable(client, make_user, make_beat, auth_header, monkeypatch):
    from beatstore.config import settings
    from beatstore.core.locking import beat_lock_key, ledger_locks

    _, token = await make_user()
    beat = await make_beat(price=300, is_exclusive=True)
    beat_id = beat.id
    monkeypatch.setattr(settings, "db_transaction_timeout_seconds", 0.05)

    async with ledger_locks.hold([beat_lock_key(beat_id)], timeout=1):
        response = await client.post("/api/v1/checkout", headers=auth_header(token), json={"beat_id": beat_id})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


# ---------------------------------------------------------------------------
# GET /api/v1/purchases/...
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_my_purchases_only_lists_own(client, make_user, make_beat, make_purchase, auth_header):
    alice, alice_token = await make_user("alice")
    bob, _ = await make_user("bob")
    beat = await make_beat()
    mine = await make_purchase(alice.id, beat, status="completed")
    await make_purchase(bob.id, beat, status="completed")

    response = await client.get("/api/v1/purchases/my", headers=auth_header(alice_token))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert [p["id"] for p in body["purchases"]] == [mine.id]


@pytest.mark.asyncio
async def test_my_purchases_status_filter(client, make_user, make_beat, make_purchase, auth_header):
    user, token = await make_user()
    await make_purchase(user.id, await make_beat(), status="completed")
    await make_purchase(user.id, await make_beat(), status="rejected")

    response = await client.get("/api/v1/purchases/my?status=rejected", headers=auth_header(token))

    assert response.json()["total"] == 1
    assert response.json()["purchases"][0]["status"] == "rejected"


@pytest.mark.asyncio
async def test_owns_beat_after_confirmed_payment(
    client, make_user, make_beat, make_purchase, make_payment, auth_header,
):
    user, token = await make_user()
    owned = await make_beat()
    pending = await make_beat()
    purchase = await make_purchase(user.id, owned, status="completed")
    await make_payment(purchase, status="approved")
    await make_purchase(user.id, pending, status="pending")

    yes = await client.get(f"/api/v1/purchases/owns/{owned.id}", headers=auth_header(token))
    no = await client.get(f"/api/v1/purchases/owns/{pending.id}", headers=auth_header(token))

    assert yes.json() == {"beat_id": owned.id, "owned": True}
    assert no.json()["owned"] is False


@pytest.mark.asyncio
async def test_get_purchase_hides_other_users_rows(client, make_user, make_beat, make_purchase, auth_header):
    alice, alice_token = await make_user("alice")
    _, bob_token = await make_user("bob")
    purchase = await make_purchase(alice.id, await make_beat())

    own = await client.get(f"/api/v1/purchases/{purchase.id}", headers=auth_header(alice_token))
    other = await client.get(f"/api/v1/purchases/{purchase.id}", headers=auth_header(bob_token))

    assert own.status_code == 200
    assert own.json()["id"] == purchase.id
    assert other.status_code == 404

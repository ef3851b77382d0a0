"""Tests for the admin surface: payments, exclusive requests and maintenance."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from beatstore.models.audit_log import AuditLog


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("method,path", [
    ("get", "/api/v1/admin/payments"),
    ("post", "/api/v1/admin/payments/p1/confirm"),
    ("get", "/api/v1/admin/exclusive-requests"),
    ("post", "/api/v1/admin/exclusive-requests/r1/approve"),
    ("get", "/api/v1/admin/maintenance/duplicate-purchases"),
])
async def test_admin_routes_require_admin(client, make_user, auth_header, method, path):
    _, token = await make_user()

    anonymous = await client.request(method, path, json={})
    customer = await client.request(method, path, headers=auth_header(token), json={})

    assert anonymous.status_code == 401
    assert customer.status_code == 403


@pytest.mark.asyncio
async def test_admin_user_ids_setting_grants_access(client, make_user, auth_header, monkeypatch):
    from beatstore.config import settings

    user, token = await make_user()
    monkeypatch.setattr(settings, "admin_user_ids", f"someone-else, {user.id}")

    response = await client.get("/api/v1/admin/payments", headers=auth_header(token))
    assert response.status_code == 200


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_admin_confirms_bank_transfer(
    client, db, make_user, make_admin, make_beat, make_purchase, make_payment, auth_header,
):
    admin, admin_token = await make_admin()
    user, _ = await make_user()
    purchase = await make_purchase(user.id, await make_beat(price=30))
    payment = await make_payment(purchase, method="bank_transfer")

    listed = await client.get(
        "/api/v1/admin/payments?status=pending&payment_method=bank_transfer",
        headers=auth_header(admin_token),
    )
    assert [p["id"] for p in listed.json()["payments"]] == [payment.id]

    response = await client.post(
        f"/api/v1/admin/payments/{payment.id}/confirm",
        headers=auth_header(admin_token),
        json={"transaction_id": "BANK-123"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "approved"
    assert body["approved_by"] == admin.id
    entry = (await db.execute(
        select(AuditLog).where(AuditLog.event_type == "payment.approved")
    )).scalar_one()
    assert entry.actor_id == admin.id


@pytest.mark.asyncio
async def test_admin_fail_then_refund_refused(
    client, make_user, make_admin, make_beat, make_purchase, make_payment, auth_header,
):
    _, admin_token = await make_admin()
    user, _ = await make_user()
    purchase = await make_purchase(user.id, await make_beat())
    payment = await make_payment(purchase)

    failed = await client.post(
        f"/api/v1/admin/payments/{payment.id}/fail",
        headers=auth_header(admin_token),
        json={"reason": "transfer never arrived"},
    )
    refund = await client.post(
        f"/api/v1/admin/payments/{payment.id}/refund",
        headers=auth_header(admin_token),
        json={},
    )

    assert failed.status_code == 200
    assert failed.json()["failure_reason"] == "transfer never arrived"
    assert refund.status_code == 409


@pytest.mark.asyncio
async def test_admin_unknown_payment_is_404(client, make_admin, auth_header):
    _, admin_token = await make_admin()
    response = await client.post("/api/v1/admin/payments/missing/confirm", headers=auth_header(admin_token), json={})
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Exclusive requests
# ---------------------------------------------------------------------------

async def _exclusive_checkout(client, make_user, auth_header, beat_id, method="card"):
    _, token = await make_user()
    response = await client.post(
        "/api/v1/checkout",
        headers=auth_header(token),
        json={"beat_id": beat_id, "payment_method": method},
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_exclusive_review_flow(client, make_user, make_admin, make_beat, auth_header):
    admin, admin_token = await make_admin()
    beat = await make_beat(price=450, is_exclusive=True)
    first = await _exclusive_checkout(client, make_user, auth_header, beat.id)
    second = await _exclusive_checkout(client, make_user, auth_header, beat.id, method="paypal")

    pending = await client.get(
        f"/api/v1/admin/exclusive-requests?status=pending&beat_id={beat.id}",
        headers=auth_header(admin_token),
    )
    assert [r["id"] for r in pending.json()] == [first["exclusive_request_id"], second["exclusive_request_id"]]

    approved = await client.post(
        f"/api/v1/admin/exclusive-requests/{first['exclusive_request_id']}/approve",
        headers=auth_header(admin_token),
        json={"admin_notes": "verified buyer"},
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["admin_notes"] == "verified buyer"

    rival = await client.post(
        f"/api/v1/admin/exclusive-requests/{second['exclusive_request_id']}/approve",
        headers=auth_header(admin_token),
        json={},
    )
    assert rival.status_code == 409

    too_early = await client.post(
        f"/api/v1/admin/exclusive-requests/{first['exclusive_request_id']}/complete",
        headers=auth_header(admin_token),
    )
    assert too_early.status_code == 409

    confirmed = await client.post(
        f"/api/v1/admin/payments/{first['payment_id']}/confirm",
        headers=auth_header(admin_token),
        json={},
    )
    assert confirmed.status_code == 200

    done = await client.get(
        f"/api/v1/admin/exclusive-requests?beat_id={beat.id}",
        headers=auth_header(admin_token),
    )
    statuses = {r["id"]: r["status"] for r in done.json()}
    assert statuses == {
        first["exclusive_request_id"]: "completed",
        second["exclusive_request_id"]: "rejected",
    }


@pytest.mark.asyncio
async def test_exclusive_reject_requires_reason(client, make_user, make_admin, make_beat, auth_header):
    _, admin_token = await make_admin()
    beat = await make_beat(price=450, is_exclusive=True)
    checkout = await _exclusive_checkout(client, make_user, auth_header, beat.id)
    url = f"/api/v1/admin/exclusive-requests/{checkout['exclusive_request_id']}/reject"

    missing = await client.post(url, headers=auth_header(admin_token), json={})
    rejected = await client.post(url, headers=auth_header(admin_token), json={"reason": "suspected fraud"})

    assert missing.status_code == 422
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_listing_and_sweep(client, make_user, make_admin, make_beat, make_purchase, auth_header):
    _, admin_token = await make_admin()
    user, _ = await make_user()
    beat = await make_beat()
    t1 = datetime(2026, 1, 5, tzinfo=timezone.utc)
    keep = await make_purchase(user.id, beat, "pending", purchased_at=t1)
    dup = await make_purchase(user.id, beat, "pending", purchased_at=t1 + timedelta(seconds=30))

    listed = await client.get("/api/v1/admin/maintenance/duplicate-purchases", headers=auth_header(admin_token))
    assert listed.json()["total"] == 1
    assert listed.json()["groups"][0]["purchase_ids"] == [keep.id, dup.id]

    preview = await client.post(
        "/api/v1/admin/maintenance/duplicate-purchases/sweep",
        headers=auth_header(admin_token),
        json={"dry_run": True},
    )
    assert preview.json()["purchases_deleted"] == 1

    swept = await client.post(
        "/api/v1/admin/maintenance/duplicate-purchases/sweep",
        headers=auth_header(admin_token),
        json={},
    )
    body = swept.json()
    assert body["dry_run"] is False
    assert body["resolved"][0]["kept_id"] == keep.id
    assert body["resolved"][0]["deleted_ids"] == [dup.id]

    again = await client.get("/api/v1/admin/maintenance/duplicate-purchases", headers=auth_header(admin_token))
    assert again.json()["total"] == 0

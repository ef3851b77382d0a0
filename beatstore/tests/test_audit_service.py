"""Tests for the audit trail and its SHA-256 hash chain."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.hashing import compute_audit_hash
from beatstore.models.audit_log import AuditLog
from beatstore.services import audit_service, checkout_service, exclusive_workflow, payment_service


def test_hash_ignores_timezone_representation():
    aware = datetime(2026, 4, 1, 9, 30, tzinfo=timezone.utc)
    naive = aware.replace(tzinfo=None)
    args = (None, "payment.approved", "admin-1", "pay-1", "{}", "info")

    assert compute_audit_hash(*args, aware) == compute_audit_hash(*args, naive)


def test_hash_chains_on_previous():
    at = datetime(2026, 4, 1, tzinfo=timezone.utc)
    first = compute_audit_hash(None, "e", None, None, "{}", "info", at)
    second = compute_audit_hash(first, "e", None, None, "{}", "info", at)
    assert first != second
    assert len(second) == 64


async def test_events_link_into_a_chain(db: AsyncSession):
    await audit_service.log_event(db, "payment.approved", actor_id="admin-1", subject_id="p1")
    await audit_service.log_event(db, "payment.refunded", actor_id="admin-1", subject_id="p1")
    await db.commit()

    events = await audit_service.list_events(db, subject_id="p1")

    assert [e.event_type for e in events] == ["payment.approved", "payment.refunded"]
    assert events[0].prev_hash is None
    assert events[1].prev_hash == events[0].entry_hash
    assert await audit_service.verify_audit_chain(db) is True


async def test_tampered_entry_breaks_chain(db: AsyncSession):
    await audit_service.log_event(db, "exclusive.approved", actor_id="admin-1", subject_id="r1")
    await audit_service.log_event(db, "exclusive.completed", actor_id="admin-1", subject_id="r1")
    await db.commit()

    entry = (await db.execute(
        select(AuditLog).where(AuditLog.event_type == "exclusive.approved")
    )).scalar_one()
    entry.actor_id = "admin-2"
    await db.commit()

    assert await audit_service.verify_audit_chain(db) is False


async def test_admin_decisions_are_audited(db: AsyncSession, make_user, make_beat):
    buyer, _ = await make_user()
    beat = await make_beat(price=350, is_exclusive=True)
    result = await checkout_service.checkout(db, buyer.id, beat.id, "card")

    await exclusive_workflow.approve_request(db, result.exclusive_request.id, "admin-9")
    await payment_service.confirm_payment(db, result.payment.id, approved_by="admin-9")

    events = await audit_service.list_events(db)
    kinds = [e.event_type for e in events]
    assert "exclusive.approved" in kinds
    assert "payment.approved" in kinds
    assert "exclusive.completed" in kinds
    assert all(e.actor_id == "admin-9" for e in events if e.event_type.startswith("exclusive."))
    assert await audit_service.verify_audit_chain(db) is True

"""Repair pass for duplicate live purchases of the same (user, beat).

Duplicates only appear through retries or bugs; checkout itself refuses
them.  A group is resolved by keeping one canonical row and deleting the
rest together with their payment records and exclusive requests:

- exactly one ``completed`` member: that member is canonical;
- no ``completed`` member: the earliest ``purchased_at`` wins (ties by id);
- more than one ``completed`` member: nothing is touched, the group is
  reported as an exclusivity violation for a human to decide.

``rejected`` rows are history and never part of a group.  Each group is
resolved in its own ledger transaction, and resolving an already clean
group is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import ExclusivityViolationError
from beatstore.core.locking import beat_lock_key, is_sqlite, ledger_transaction, purchase_lock_key
from beatstore.models.exclusive_request import ExclusivePurchaseRequest
from beatstore.models.payment import PaymentRecord
from beatstore.models.purchase import ACTIVE_PURCHASE_STATUSES, Purchase
from beatstore.services import audit_service

logger = logging.getLogger(__name__)


@dataclass
class DuplicateGroup:
    user_id: str
    beat_id: str
    purchase_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "beat_id": self.beat_id, "purchase_ids": list(self.purchase_ids)}


@dataclass
class GroupResolution:
    user_id: str
    beat_id: str
    kept_id: str | None
    deleted_ids: list[str] = field(default_factory=list)
    deleted_payment_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "beat_id": self.beat_id,
            "kept_id": self.kept_id,
            "deleted_ids": list(self.deleted_ids),
            "deleted_payment_ids": list(self.deleted_payment_ids),
        }


def choose_canonical(members: list[Purchase]) -> Purchase:
    """Pick the row a group keeps. Raises if the choice is not mechanical."""
    completed = [p for p in members if p.status == "completed"]
    if len(completed) > 1:
        raise ExclusivityViolationError(
            members[0].beat_id,
            f"{len(completed)} completed purchases for user {members[0].user_id}: "
            + ", ".join(p.id for p in completed),
        )
    if completed:
        return completed[0]
    return min(members, key=lambda p: (p.purchased_at, p.id))


async def find_duplicate_groups(db: AsyncSession) -> list[DuplicateGroup]:
    """Groups of live purchases sharing (user_id, beat_id), count > 1."""
    keys = await db.execute(
        select(Purchase.user_id, Purchase.beat_id)
        .where(Purchase.status.in_(ACTIVE_PURCHASE_STATUSES))
        .group_by(Purchase.user_id, Purchase.beat_id)
        .having(func.count(Purchase.id) > 1)
        .order_by(Purchase.user_id, Purchase.beat_id)
    )
    groups: list[DuplicateGroup] = []
    for user_id, beat_id in keys.all():
        members = await _load_members(db, user_id, beat_id)
        groups.append(DuplicateGroup(user_id=user_id, beat_id=beat_id, purchase_ids=[p.id for p in members]))
    return groups


async def _load_members(db: AsyncSession, user_id: str, beat_id: str) -> list[Purchase]:
    stmt = (
        select(Purchase)
        .where(
            Purchase.user_id == user_id,
            Purchase.beat_id == beat_id,
            Purchase.status.in_(ACTIVE_PURCHASE_STATUSES),
        )
        .order_by(Purchase.purchased_at.asc(), Purchase.id.asc())
        .execution_options(populate_existing=True)
    )
    if not is_sqlite:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def resolve_group(db: AsyncSession, group: DuplicateGroup, admin_id: str) -> GroupResolution:
    """Delete every non-canonical member of the group, all or nothing."""
    # Both keys: the group may mix ordinary and exclusive rows for the beat
    keys = (
        purchase_lock_key(group.user_id, group.beat_id, False),
        beat_lock_key(group.beat_id),
    )
    async with ledger_transaction(db, *keys):
        members = await _load_members(db, group.user_id, group.beat_id)
        if len(members) <= 1:
            logger.debug("Group %s/%s already clean", group.user_id, group.beat_id)
            return GroupResolution(
                user_id=group.user_id,
                beat_id=group.beat_id,
                kept_id=members[0].id if members else None,
            )

        canonical = choose_canonical(members)
        doomed = [p.id for p in members if p.id != canonical.id]

        payment_ids = list((await db.execute(
            select(PaymentRecord.id).where(PaymentRecord.purchase_id.in_(doomed))
        )).scalars().all())

        await db.execute(
            delete(ExclusivePurchaseRequest).where(ExclusivePurchaseRequest.purchase_id.in_(doomed))
        )
        if payment_ids:
            await db.execute(delete(PaymentRecord).where(PaymentRecord.id.in_(payment_ids)))
        await db.execute(delete(Purchase).where(Purchase.id.in_(doomed)))

        await audit_service.log_event(
            db,
            "purchase.duplicates_removed",
            actor_id=admin_id,
            subject_type="purchase",
            subject_id=canonical.id,
            details={
                "user_id": group.user_id,
                "beat_id": group.beat_id,
                "deleted_purchases": doomed,
                "deleted_payments": payment_ids,
            },
        )

    # Core deletes bypass the identity map
    for purchase in members:
        if purchase.id in doomed:
            db.expunge(purchase)

    logger.info(
        "Duplicate group %s/%s resolved by %s: kept %s, deleted %s (payments %s)",
        group.user_id, group.beat_id, admin_id, canonical.id, doomed, payment_ids,
    )
    return GroupResolution(
        user_id=group.user_id,
        beat_id=group.beat_id,
        kept_id=canonical.id,
        deleted_ids=doomed,
        deleted_payment_ids=payment_ids,
    )


async def sweep(db: AsyncSession, admin_id: str, dry_run: bool = False) -> dict[str, Any]:
    """Resolve every duplicate group; violations are reported, not raised."""
    groups = await find_duplicate_groups(db)
    resolved: list[dict[str, Any]] = []
    violations: list[dict[str, Any]] = []

    for group in groups:
        if dry_run:
            members = await _load_members(db, group.user_id, group.beat_id)
            try:
                canonical = choose_canonical(members)
            except ExclusivityViolationError as exc:
                violations.append({**group.to_dict(), "detail": exc.detail})
                continue
            resolved.append(GroupResolution(
                user_id=group.user_id,
                beat_id=group.beat_id,
                kept_id=canonical.id,
                deleted_ids=[p.id for p in members if p.id != canonical.id],
            ).to_dict())
            continue

        try:
            resolution = await resolve_group(db, group, admin_id)
        except ExclusivityViolationError as exc:
            logger.warning("Duplicate group %s/%s left untouched: %s", group.user_id, group.beat_id, exc.detail)
            violations.append({**group.to_dict(), "detail": exc.detail})
            continue
        resolved.append(resolution.to_dict())

    if dry_run:
        await db.rollback()
    return {
        "dry_run": dry_run,
        "groups_found": len(groups),
        "resolved": resolved,
        "violations": violations,
        "purchases_deleted": sum(len(r["deleted_ids"]) for r in resolved),
    }

"""Audit trail for admin decisions and payment anomalies (SHA-256 hash chain)."""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.hashing import compute_audit_hash, verify_chain
from beatstore.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_event(
    db: AsyncSession,
    event_type: str,
    *,
    actor_id: str | None = None,
    subject_type: str | None = None,
    subject_id: str | None = None,
    details: dict | None = None,
    severity: str = "info",
) -> AuditLog:
    """Append an audit entry to the session. The caller's transaction commits it."""
    latest = await db.execute(
        select(AuditLog.entry_hash).order_by(AuditLog.created_at.desc()).limit(1)
    )
    prev_hash = latest.scalar_one_or_none()

    created_at = datetime.now(timezone.utc)
    details_json = json.dumps(details or {}, sort_keys=True, default=str)

    entry_hash = compute_audit_hash(
        prev_hash, event_type, actor_id, subject_id, details_json, severity, created_at,
    )

    entry = AuditLog(
        event_type=event_type,
        actor_id=actor_id,
        subject_type=subject_type,
        subject_id=subject_id,
        details=details_json,
        severity=severity,
        prev_hash=prev_hash,
        entry_hash=entry_hash,
        created_at=created_at,
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_events(
    db: AsyncSession,
    *,
    subject_id: str | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    query = select(AuditLog)
    if subject_id:
        query = query.where(AuditLog.subject_id == subject_id)
    if event_type:
        query = query.where(AuditLog.event_type == event_type)
    result = await db.execute(query.order_by(AuditLog.created_at.asc()).limit(limit))
    return list(result.scalars().all())


async def verify_audit_chain(db: AsyncSession) -> bool:
    result = await db.execute(select(AuditLog).order_by(AuditLog.created_at.asc()))
    ok = verify_chain(list(result.scalars().all()))
    if not ok:
        logger.error("Audit hash chain verification failed")
    return ok

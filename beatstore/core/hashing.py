"""SHA-256 hash chain for the audit trail."""

import hashlib
from datetime import datetime, timezone


def _iso_utc(value: datetime) -> str:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def compute_audit_hash(
    prev_hash: str | None,
    event_type: str,
    actor_id: str | None,
    subject_id: str | None,
    details_json: str,
    severity: str,
    created_at: datetime,
) -> str:
    payload = "|".join([
        prev_hash or "GENESIS",
        event_type,
        actor_id or "SYSTEM",
        subject_id or "-",
        details_json,
        severity,
        _iso_utc(created_at),
    ])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_chain(entries: list) -> bool:
    """Recompute every link of an ordered list of AuditLog rows."""
    prev = None
    for entry in entries:
        if entry.prev_hash != prev:
            return False
        expected = compute_audit_hash(
            prev,
            entry.event_type,
            entry.actor_id,
            entry.subject_id,
            entry.details,
            entry.severity,
            entry.created_at,
        )
        if expected != entry.entry_hash:
            return False
        prev = entry.entry_hash
    return True

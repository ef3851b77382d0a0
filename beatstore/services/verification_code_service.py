"""Single-use, time-boxed numeric codes for account recovery.

At most one live code exists per (user, type): issuing a new one burns the
previous one.  A code verifies successfully exactly once; replays, expired
codes and codes burnt by too many wrong guesses are refused.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.config import settings
from beatstore.core.exceptions import CodeExpiredError, CodeMismatchError, CodeNotFoundError
from beatstore.models.verification_code import VerificationCode

logger = logging.getLogger(__name__)

CODE_TYPES = ("password_reset", "email_verification")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_code() -> str:
    """Uniform over 100000-999999."""
    return str(secrets.randbelow(900000) + 100000)


async def issue_code(db: AsyncSession, user_id: str, code_type: str = "password_reset") -> VerificationCode:
    if code_type not in CODE_TYPES:
        raise ValueError(f"Unknown verification code type: {code_type}")

    await db.execute(
        update(VerificationCode)
        .where(
            VerificationCode.user_id == user_id,
            VerificationCode.type == code_type,
            VerificationCode.used.is_(False),
        )
        .values(used=True)
    )

    now = _utcnow()
    code = VerificationCode(
        user_id=user_id,
        code=generate_code(),
        type=code_type,
        expires_at=now + timedelta(minutes=settings.verification_code_ttl_minutes),
        used=False,
        attempts=0,
        created_at=now,
    )
    db.add(code)
    await db.commit()
    await db.refresh(code)
    logger.info("Issued %s code for user %s (expires %s)", code_type, user_id, code.expires_at)
    return code


async def verify_code(
    db: AsyncSession, user_id: str, code_type: str, code: str, commit: bool = True,
) -> VerificationCode:
    """Consume the live code for (user, type) if ``code`` matches.

    Raises ``CodeNotFoundError`` when there is no unused code (never issued,
    already consumed or burnt), ``CodeExpiredError`` past ``expires_at`` and
    ``CodeMismatchError`` for a wrong guess.

    With ``commit=False`` a successful consumption is only staged, so the
    caller can commit it together with its own changes.  Wrong guesses are
    always committed.
    """
    result = await db.execute(
        select(VerificationCode)
        .where(
            VerificationCode.user_id == user_id,
            VerificationCode.type == code_type,
            VerificationCode.used.is_(False),
        )
        .order_by(VerificationCode.created_at.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    live = result.scalar_one_or_none()
    if live is None:
        raise CodeNotFoundError()
    code_id = live.id

    now = _utcnow()
    if _as_utc(live.expires_at) <= now:
        raise CodeExpiredError()

    if not secrets.compare_digest(live.code, (code or "").strip()):
        max_attempts = settings.verification_code_max_attempts
        # Counted in the store so concurrent wrong guesses cannot overwrite each other
        counted = await db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id, VerificationCode.used.is_(False))
            .values(
                attempts=VerificationCode.attempts + 1,
                used=VerificationCode.attempts + 1 >= max_attempts,
            )
            .returning(VerificationCode.attempts)
            .execution_options(synchronize_session=False)
        )
        attempts = counted.scalar_one_or_none()
        await db.commit()
        if attempts is None:
            raise CodeNotFoundError()
        attempts_left = max(max_attempts - attempts, 0)
        if attempts_left == 0:
            logger.warning("Verification code %s burnt after %d wrong attempts", code_id, attempts)
        raise CodeMismatchError(attempts_left)

    # Conditional update so two concurrent verifications cannot both succeed
    consumed = await db.execute(
        update(VerificationCode)
        .where(VerificationCode.id == code_id, VerificationCode.used.is_(False))
        .values(used=True, consumed_at=now)
    )
    if consumed.rowcount != 1:
        await db.rollback()
        raise CodeNotFoundError()
    if commit:
        await db.commit()
    await db.refresh(live)
    logger.info("Verification code %s consumed by user %s", code_id, user_id)
    return live


async def cleanup_expired_codes(db: AsyncSession) -> int:
    """Delete expired codes. Best effort; correctness never depends on it."""
    result = await db.execute(
        delete(VerificationCode).where(VerificationCode.expires_at < _utcnow())
    )
    await db.commit()
    if result.rowcount:
        logger.info("Removed %d expired verification codes", result.rowcount)
    return result.rowcount or 0

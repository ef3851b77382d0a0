"""Login and password recovery for storefront users."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.async_tasks import fire_and_forget
from beatstore.core.auth import create_access_token, hash_password, verify_password
from beatstore.core.exceptions import CodeNotFoundError, UnauthorizedError
from beatstore.models.user import User
from beatstore.services import notification_service, verification_code_service

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def find_user(db: AsyncSession, identifier: str) -> User | None:
    """Look a user up by username or email."""
    identifier = identifier.strip()
    result = await db.execute(
        select(User).where(or_(User.username == identifier, User.email == identifier.lower()))
    )
    return result.scalars().first()


async def create_user(
    db: AsyncSession, username: str, password: str, email: str | None = None, role: str = "client",
) -> User:
    user = User(
        username=username.strip(),
        email=email.lower().strip() if email else None,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def login(db: AsyncSession, username: str, password: str) -> dict:
    user = await find_user(db, username)
    if user is None or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid username or password")
    return {
        "user_id": user.id,
        "username": user.username,
        "role": user.role,
        "token": create_access_token(user.id, user.username, user.role),
    }


async def request_password_reset(db: AsyncSession, identifier: str) -> None:
    """Issue a reset code and send it in the background.

    Returns the same way whether or not the account exists.
    """
    user = await find_user(db, identifier)
    if user is None:
        logger.info("Password reset requested for unknown account")
        return
    code = await verification_code_service.issue_code(db, user.id, "password_reset")
    fire_and_forget(
        notification_service.send_verification_code(user.email, code.code, "password_reset"),
        task_name=f"password-reset-{user.id}",
    )


async def reset_password(db: AsyncSession, identifier: str, code: str, new_password: str) -> None:
    """Consume the reset code and store the new password hash in one commit.

    An unknown account looks exactly like a missing code.
    """
    user = await find_user(db, identifier)
    if user is None:
        raise CodeNotFoundError()
    user_id = user.id
    await verification_code_service.verify_code(db, user_id, "password_reset", code, commit=False)
    try:
        user.password_hash = hash_password(new_password)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Password reset completed for user %s", user_id)

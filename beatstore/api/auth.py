"""Login and password recovery endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import BeatstoreError, CodeExpiredError, CodeMismatchError, CodeNotFoundError
from beatstore.database import get_db
from beatstore.schemas.auth import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
)
from beatstore.services import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_RESET_REQUESTED = "If the account exists, a reset code has been sent."


@router.post("/login", response_model=LoginResponse)
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await user_service.login(db, req.username, req.password)


@router.post("/password-reset/request", response_model=MessageResponse, status_code=202)
async def request_password_reset(req: PasswordResetRequest, db: AsyncSession = Depends(get_db)):
    await user_service.request_password_reset(db, req.identifier)
    return MessageResponse(message=_RESET_REQUESTED)


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(req: PasswordResetConfirm, db: AsyncSession = Depends(get_db)):
    try:
        await user_service.reset_password(db, req.identifier, req.code, req.new_password)
    except (CodeExpiredError, CodeMismatchError):
        # Actionable by the user: keep the specific message
        raise
    except BeatstoreError as exc:
        logger.info("Password reset refused (%s)", exc.error_code)
        raise CodeNotFoundError() from exc
    return MessageResponse(message="Password updated. You can now sign in.")

"""User authentication: bcrypt passwords and JWT bearer tokens.

Admin identity is always resolved from the caller's token and passed on
explicitly to the service layer; nothing reads an ambient admin session.
"""
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Header
from jose import JWTError, jwt

from beatstore.config import settings
from beatstore.core.exceptions import ForbiddenError, UnauthorizedError


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_access_token(user_id: str, username: str, role: str = "client") -> str:
    """Create a JWT for a storefront user."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expire_hours)
    payload = {
        "sub": user_id,
        "name": username,
        "role": role,
        "type": "user",
        "jti": str(uuid.uuid4()),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns the payload."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    if payload.get("sub") is None:
        raise UnauthorizedError("Token missing subject")
    if payload.get("type") != "user":
        raise UnauthorizedError("User token required")
    return payload


def _payload_from_header(authorization: str | None) -> dict:
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthorizedError("Authorization header must be: Bearer <token>")
    return decode_token(parts[1])


def get_current_user_id(authorization: str = Header(None)) -> str:
    """FastAPI dependency that extracts the user_id from the Authorization header."""
    return _payload_from_header(authorization)["sub"]


def _admin_ids() -> set[str]:
    return {value.strip() for value in settings.admin_user_ids.split(",") if value.strip()}


def get_current_admin_id(authorization: str = Header(None)) -> str:
    """FastAPI dependency returning the admin's user id, for audit attribution."""
    payload = _payload_from_header(authorization)
    user_id = payload["sub"]
    if payload.get("role") != "admin" and user_id not in _admin_ids():
        raise ForbiddenError()
    return user_id

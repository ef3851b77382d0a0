import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class VerificationCode(Base):
    """Single-use numeric code for account recovery actions."""

    __tablename__ = "verification_codes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    code = Column(String(6), nullable=False)
    type = Column(String(30), nullable=False, default="password_reset")  # password_reset | email_verification
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_verification_user_type", "user_id", "type", "used"),
        Index("idx_verification_expires", "expires_at"),
    )

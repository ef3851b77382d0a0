import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Numeric, String, Text, text
from sqlalchemy.orm import relationship

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


PURCHASE_STATUSES = ("pending", "approved", "rejected", "completed")
ACTIVE_PURCHASE_STATUSES = ("pending", "approved", "completed")
TERMINAL_PURCHASE_STATUSES = ("rejected", "completed")


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)
    beat_id = Column(String(36), nullable=False)  # no FK: the catalog row may be deleted later
    price = Column(Numeric(10, 2), nullable=False)

    # Snapshot of the catalog entry at checkout time
    beat_title = Column(String(255), nullable=False)
    beat_producer = Column(String(255), nullable=False)
    beat_audio_url = Column(String(500), nullable=True)
    beat_image_url = Column(String(500), nullable=True)
    is_exclusive = Column(Boolean, nullable=False, default=False)

    # State machine: pending -> completed
    #                pending -> approved -> completed   (exclusive beats)
    #                pending | approved -> rejected
    status = Column(String(20), nullable=False, default="pending")
    payment_outcome = Column(String(20), nullable=True)  # last applied: success | failure

    purchased_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(String(36), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, default="")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    payments = relationship(
        "PaymentRecord",
        back_populates="purchase",
        lazy="selectin",
        order_by="PaymentRecord.created_at",
    )

    __table_args__ = (
        Index("idx_purchase_user_beat", "user_id", "beat_id"),
        Index("idx_purchase_beat", "beat_id"),
        Index("idx_purchase_status", "status"),
        # At most one exclusive winner per beat, ever
        Index(
            "uq_purchase_exclusive_winner",
            "beat_id",
            unique=True,
            sqlite_where=text("is_exclusive = 1 AND status = 'completed'"),
            postgresql_where=text("is_exclusive AND status = 'completed'"),
        ),
    )

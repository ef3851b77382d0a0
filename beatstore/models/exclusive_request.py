"""Manual-review overlay for exclusive beats."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ExclusivePurchaseRequest(Base):
    __tablename__ = "exclusive_purchase_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # One-directional link; the purchase finds its request through the unique index
    purchase_id = Column(String(36), ForeignKey("purchases.id"), nullable=False, unique=True)
    user_id = Column(String(36), nullable=False)
    beat_id = Column(String(36), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected | completed
    admin_notes = Column(Text, default="")
    payment_method = Column(String(30), nullable=True)
    payment_id = Column(String(36), ForeignKey("payments.id"), nullable=True)

    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(36), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    purchase = relationship("Purchase", lazy="selectin")

    __table_args__ = (
        Index("idx_exclusive_beat", "beat_id"),
        Index("idx_exclusive_status", "status"),
    )

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


PAYMENT_STATUSES = ("pending", "approved", "failed", "refunded")
LIVE_PAYMENT_STATUSES = ("pending", "approved")


class PaymentRecord(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    purchase_id = Column(String(36), ForeignKey("purchases.id"), nullable=False)
    customer_id = Column(String(36), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    payment_method = Column(String(30), nullable=False)  # card | paypal | bank_transfer

    # pending -> approved -> refunded
    # pending -> failed
    status = Column(String(20), nullable=False, default="pending")

    transaction_id = Column(String(255), nullable=True)  # provider correlation id
    bank_reference = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True)
    notes = Column(Text, default="")

    approved_by = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    purchase = relationship("Purchase", back_populates="payments", lazy="selectin")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_purchase", "purchase_id"),
        Index("idx_payment_status", "status"),
        Index("idx_payment_transaction", "transaction_id"),
    )

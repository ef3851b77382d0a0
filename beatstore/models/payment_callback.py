"""Provider callbacks, stored so redelivery is recognised and acknowledged."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Numeric, String, Text, UniqueConstraint

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentCallback(Base):
    __tablename__ = "payment_callbacks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    transaction_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)  # provider-reported: succeeded | failed
    amount = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=True)
    payment_record_id = Column(String(36), nullable=True)
    outcome = Column(String(20), nullable=False, default="applied")  # applied | anomaly
    detail = Column(Text, default="")
    received_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("transaction_id", "status", name="uq_callback_transaction_status"),
        Index("idx_callback_outcome", "outcome"),
    )

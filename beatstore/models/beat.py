"""Read-side view of the catalog. Catalog CRUD lives elsewhere."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Numeric, String

from beatstore.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Beat(Base):
    __tablename__ = "beats"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    producer = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    audio_url = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    is_exclusive = Column(Boolean, nullable=False, default=False)
    # Exclusive beats disappear from the storefront while a request is open
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_beats_exclusive", "is_exclusive"),
    )

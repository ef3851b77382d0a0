"""Catalog read side: checkout snapshots and exclusive-beat visibility."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.core.exceptions import BeatNotFoundError
from beatstore.models.beat import Beat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeatSnapshot:
    """Beat metadata frozen into a purchase at checkout time."""

    beat_id: str
    title: str
    producer: str
    price: Decimal
    is_exclusive: bool
    audio_url: str | None = None
    image_url: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["price"] = float(self.price)
        return data


def snapshot_from_beat(beat: Beat) -> BeatSnapshot:
    return BeatSnapshot(
        beat_id=beat.id,
        title=beat.title,
        producer=beat.producer,
        price=Decimal(str(beat.price)),
        is_exclusive=bool(beat.is_exclusive),
        audio_url=beat.audio_url,
        image_url=beat.image_url,
    )


async def get_beat(db: AsyncSession, beat_id: str) -> Beat:
    result = await db.execute(select(Beat).where(Beat.id == beat_id))
    beat = result.scalar_one_or_none()
    if beat is None:
        raise BeatNotFoundError(beat_id)
    return beat


async def get_beat_snapshot(db: AsyncSession, beat_id: str) -> BeatSnapshot:
    """Read a beat for checkout. Hidden beats cannot be bought."""
    beat = await get_beat(db, beat_id)
    if beat.is_hidden:
        raise BeatNotFoundError(beat_id)
    return snapshot_from_beat(beat)


async def set_beat_hidden(db: AsyncSession, beat_id: str, hidden: bool) -> None:
    """Toggle storefront visibility. A beat already deleted from the catalog is ignored."""
    result = await db.execute(select(Beat).where(Beat.id == beat_id))
    beat = result.scalar_one_or_none()
    if beat is None:
        return
    if bool(beat.is_hidden) != hidden:
        beat.is_hidden = hidden
        logger.info("Beat %s %s", beat_id, "hidden" if hidden else "visible again")

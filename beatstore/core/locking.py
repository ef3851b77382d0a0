"""Keyed mutual exclusion and bounded transactions for ledger writes.

Every operation that reads a purchase status and acts on it runs inside
``ledger_transaction``.  The unit of exclusion is:

- ``beat:<beat_id>`` for exclusive beats, because finalisation must see and
  mutate every sibling purchase of the beat at once;
- ``purchase:<user_id>:<beat_id>`` for ordinary beats.

Keys are acquired in sorted order so two operations needing overlapping key
sets cannot deadlock.  The in-process locks serialise the async workers of
one process.  On PostgreSQL every key is also taken as a transaction-scoped
advisory lock (``pg_advisory_xact_lock``), which serialises separate
processes even when the rows they would lock do not exist yet.  The services
also take row locks (``SELECT ... FOR UPDATE``) there.  Lock waits and the
transaction body share one deadline; running past it rolls back and raises
``TransactionTimeoutError``, which callers may retry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from beatstore.config import settings
from beatstore.core.exceptions import TransactionTimeoutError

logger = logging.getLogger(__name__)

is_sqlite: bool = settings.database_url.startswith("sqlite")


def beat_lock_key(beat_id: str) -> str:
    return f"beat:{beat_id}"


def purchase_lock_key(user_id: str, beat_id: str, is_exclusive: bool) -> str:
    """Lock key guarding a purchase row (and its would-be duplicates)."""
    if is_exclusive:
        return beat_lock_key(beat_id)
    return f"purchase:{user_id}:{beat_id}"


class KeyedLocks:
    """A registry of ``asyncio.Lock`` objects created on demand per key.

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of purchases.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        self._refs[key] -= 1
        if self._refs[key] == 0:
            del self._refs[key]
            del self._locks[key]

    def held_keys(self) -> set[str]:
        return {key for key, lock in self._locks.items() if lock.locked()}

    def clear(self) -> None:
        self._locks.clear()
        self._refs.clear()

    @asynccontextmanager
    async def hold(self, keys: Iterable[str], timeout: float) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        acquired: list[str] = []
        try:
            for key in sorted(set(keys)):
                lock = self._checkout(key)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=max(deadline - loop.time(), 0))
                except asyncio.TimeoutError:
                    self._checkin(key)
                    logger.warning("Lock wait on %s exceeded %.1fs", key, timeout)
                    raise TransactionTimeoutError(key, timeout) from None
                except BaseException:
                    # Cancelled while waiting: the key was checked out but never acquired
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)


ledger_locks = KeyedLocks()

_ADVISORY_LOCK = text("SELECT pg_advisory_xact_lock(hashtext(:key))")


async def _take_advisory_locks(db: AsyncSession, keys: Iterable[str]) -> None:
    """Released by the store when the transaction commits or rolls back."""
    for key in sorted(set(keys)):
        await db.execute(_ADVISORY_LOCK, {"key": key})


@asynccontextmanager
async def ledger_transaction(
    db: AsyncSession,
    *keys: str,
    timeout: float | None = None,
) -> AsyncIterator[AsyncSession]:
    """Hold the ledger locks for ``keys``, run the body, then commit.

    Any exception rolls the session back.  Store-level lock errors and the
    overall deadline surface as ``TransactionTimeoutError``.
    """
    timeout = settings.db_transaction_timeout_seconds if timeout is None else timeout
    label = ",".join(sorted(set(keys))) or "ledger"

    async with ledger_locks.hold(keys, timeout):
        try:
            async with asyncio.timeout(timeout):
                if not is_sqlite:
                    await _take_advisory_locks(db, keys)
                yield db
                await db.commit()
        except TimeoutError:
            await db.rollback()
            logger.warning("Ledger transaction on %s exceeded %.1fs; rolled back", label, timeout)
            raise TransactionTimeoutError(label, timeout) from None
        except OperationalError as exc:
            await db.rollback()
            logger.warning("Ledger transaction on %s failed in the store: %s", label, exc.orig)
            raise TransactionTimeoutError(label, timeout) from exc
        except Exception:
            await db.rollback()
            raise

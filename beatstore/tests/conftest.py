"""Shared test fixtures for the beatstore test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from beatstore.database import Base, get_db
from beatstore.main import app
from beatstore.models import *  # noqa: ensure all models are loaded for create_all


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after. Also clear global lock state."""
    from beatstore.core.locking import ledger_locks
    ledger_locks.clear()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
async def client():
    """httpx AsyncClient wired to the FastAPI app with test DB override."""
    import httpx

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
async def file_sessions(tmp_path):
    """Sessionmaker over a file-backed SQLite database, one connection per session.

    Used by race tests that run several sessions at once.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def auth_header():
    """Return a callable that builds an Authorization header from a JWT."""
    def _build(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}
    return _build


@pytest.fixture
def make_user(db: AsyncSession):
    """Factory fixture: create a User and return (user, jwt_token)."""
    from beatstore.core.auth import create_access_token, hash_password
    from beatstore.models.user import User

    async def _make(username: str = None, role: str = "client", password: str = "password123", email: str = None):
        username = username or f"user-{_new_id()[:8]}"
        user = User(
            id=_new_id(),
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            role=role,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user, create_access_token(user.id, user.username, user.role)

    return _make


@pytest.fixture
def make_admin(make_user):
    """Factory fixture: create an admin User and return (admin, jwt_token)."""
    async def _make(username: str = None):
        return await make_user(username or f"admin-{_new_id()[:8]}", role="admin")
    return _make


@pytest.fixture
def make_beat(db: AsyncSession):
    """Factory fixture: create a catalog Beat."""
    from beatstore.models.beat import Beat

    async def _make(price: float = 9.99, is_exclusive: bool = False, title: str = None, **kwargs):
        beat = Beat(
            id=_new_id(),
            title=title or f"Beat {_new_id()[:6]}",
            producer=kwargs.get("producer", "Test Producer"),
            price=Decimal(str(price)),
            audio_url=kwargs.get("audio_url", "https://cdn.example.com/audio.mp3"),
            image_url=kwargs.get("image_url"),
            is_exclusive=is_exclusive,
            is_hidden=kwargs.get("is_hidden", False),
        )
        db.add(beat)
        await db.commit()
        await db.refresh(beat)
        return beat

    return _make


@pytest.fixture
def make_purchase(db: AsyncSession):
    """Factory fixture: insert a Purchase row directly, bypassing ledger checks.

    Used to seed duplicate rows and arbitrary states.
    """
    from beatstore.models.purchase import Purchase

    async def _make(user_id: str, beat, status: str = "pending", purchased_at: datetime = None, **kwargs):
        purchase = Purchase(
            id=_new_id(),
            user_id=user_id,
            beat_id=beat.id,
            price=Decimal(str(beat.price)),
            beat_title=beat.title,
            beat_producer=beat.producer,
            beat_audio_url=beat.audio_url,
            is_exclusive=bool(beat.is_exclusive),
            status=status,
            payment_outcome=kwargs.get("payment_outcome"),
            purchased_at=purchased_at or datetime.now(timezone.utc),
            completed_at=datetime.now(timezone.utc) if status == "completed" else None,
        )
        db.add(purchase)
        await db.commit()
        await db.refresh(purchase)
        return purchase

    return _make


@pytest.fixture
def make_payment(db: AsyncSession):
    """Factory fixture: insert a PaymentRecord for a purchase."""
    from beatstore.models.payment import PaymentRecord

    async def _make(purchase, status: str = "pending", transaction_id: str = None, amount=None, method: str = "card"):
        payment = PaymentRecord(
            id=_new_id(),
            purchase_id=purchase.id,
            customer_id=purchase.user_id,
            amount=Decimal(str(amount if amount is not None else purchase.price)),
            currency="USD",
            payment_method=method,
            status=status,
            transaction_id=transaction_id,
            approved_at=datetime.now(timezone.utc) if status == "approved" else None,
        )
        db.add(payment)
        await db.commit()
        await db.refresh(payment)
        return payment

    return _make

"""Test fixtures: a throwaway SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a live Postgres:

1. Each test gets its own SQLite file under tmp_path.
2. The schema and seed users are written with the *sync* sqlite driver, so
   fixture setup never touches an event loop.
3. The app under test gets an aiosqlite session factory (NullPool, so no
   connection outlives the loop that opened it) through dependency_overrides
   for both get_db (REST) and get_session_factory (the cable).

Every test builds a fresh app with create_app(), so each one has its own
StreamRegistry and nothing leaks between tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from eventbell.auth.jwt import create_access_token
from eventbell.config import settings
from eventbell.db.engine import get_db, get_session_factory
from eventbell.db.models import Base, Notification, User
from eventbell.main import create_app

ALICE = 1
BOB = 2
CAROL = 3  # deactivated


@pytest.fixture()
def db_path(tmp_path):
    path = tmp_path / "eventbell.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    with Session(engine) as s:
        s.add_all([
            User(id=ALICE, email="alice@example.com", first_name="Alice", last_name="Ng"),
            User(id=BOB, email="bob@example.com", first_name="Bob", last_name="Reyes"),
            User(
                id=CAROL, email="carol@example.com", first_name="Carol",
                last_name="Diaz", active=False,
            ),
        ])
        s.commit()
    engine.dispose()
    return path


@pytest.fixture()
def seed(db_path):
    """Insert a notification directly; returns its id.

    Each call is one second newer than the last, so ordering is deterministic.
    """
    engine = create_engine(f"sqlite:///{db_path}")
    base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    calls = {"n": 0}

    def _seed(user_id: int, title: str = "Hello", read: bool = False, **kw) -> int:
        calls["n"] += 1
        with Session(engine) as s:
            n = Notification(
                user_id=user_id,
                notification_type=kw.pop("notification_type", "general"),
                title=title,
                message=kw.pop("message", f"{title} body"),
                read=read,
                read_at=base if read else None,
                created_at=base + timedelta(seconds=calls["n"]),
                meta=kw.pop("meta", {}),
                **kw,
            )
            s.add(n)
            s.commit()
            return n.id

    yield _seed
    engine.dispose()


@pytest.fixture()
def session_factory(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    engine.sync_engine.dispose()


@pytest.fixture()
def app(session_factory, monkeypatch):
    """Fresh app wired to the test database. Pings are pushed out of the way."""
    monkeypatch.setattr(settings, "cable_ping_interval_seconds", 60.0)
    application = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def alice_token():
    return create_access_token(ALICE, email="alice@example.com")


@pytest.fixture()
def bob_token():
    return create_access_token(BOB, email="bob@example.com")


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class RecordingPublisher:
    """Publisher double: remembers every (identity, event_type, payload)."""

    def __init__(self):
        self.events = []

    async def publish(self, identity, event_type, payload):
        self.events.append((identity, event_type, payload))
        return 1

    def types(self):
        return [e[1] for e in self.events]

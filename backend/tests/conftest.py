"""Pytest fixtures: every store test runs against both backends.

The relational backend uses a file-backed SQLite database per test; the
clock is injected so ledger timestamps are deterministic.
"""
from datetime import datetime, timedelta

import pytest
import pytz
from sqlalchemy import event
from fastapi.testclient import TestClient

from campus_ledger.database import make_engine
from campus_ledger.main import app
from campus_ledger.models.event import EventStatus
from campus_ledger.schemas.event import EventCreate
from campus_ledger.store import get_store
from campus_ledger.store.memory import MemoryStore
from campus_ledger.store.relational import RelationalStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=pytz.utc)


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Fresh SQLite engine per test, with foreign keys enforced like PostgreSQL."""
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def memory_store(clock):
    store = MemoryStore(clock=clock, seed_sample_event=False)
    store.init()
    return store


@pytest.fixture(scope="function")
def relational_store(db_engine, clock):
    store = RelationalStore(db_engine, clock=clock, seed_sample_event=False)
    store.init()
    return store


@pytest.fixture(scope="function", params=["memory", "relational"])
def store(request):
    """The same contract, once per backend."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture(scope="function")
def client(store):
    """FastAPI TestClient with the store dependency overridden."""
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def make_event_payload(event_id: str = "ev1", **overrides) -> EventCreate:
    """Build a valid EventCreate around T0."""
    fields = {
        "id": event_id,
        "name": f"Event {event_id}",
        "description": "Campus meetup",
        "start_at": T0 - timedelta(days=1),
        "end_at": T0 + timedelta(days=1),
        "check_in_secret": "secret-1234",
        "ticket_price_lamports": 0,
        "status": EventStatus.published,
    }
    fields.update(overrides)
    return EventCreate(**fields)


@pytest.fixture(scope="function")
def ev1(store):
    return store.create_event(make_event_payload("ev1"))

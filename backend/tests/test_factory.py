"""Tests for backend selection, initialization and memory fallback."""
import pytest
from sqlalchemy import inspect, text

from campus_ledger.config import Settings
from campus_ledger.database import make_engine
from campus_ledger.store.base import SAMPLE_EVENT_ID
from campus_ledger.store.errors import BackendInitError
from campus_ledger.store.factory import create_event_store, init_event_store, is_degraded
from campus_ledger.store.memory import MemoryStore
from campus_ledger.store.relational import RelationalStore
from tests.conftest import make_event_payload


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestCreateEventStore:
    def test_memory_without_database_url(self, clock):
        store = create_event_store(make_settings(DATABASE_URL=""), clock=clock)
        assert isinstance(store, MemoryStore)
        assert store.mode == "memory"

    def test_relational_with_database_url(self, tmp_path, clock):
        store = create_event_store(make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'a.db'}"), clock=clock)
        assert isinstance(store, RelationalStore)
        assert store.mode == "relational"

    def test_unusable_url_is_an_init_error(self, clock):
        with pytest.raises(BackendInitError):
            create_event_store(make_settings(DATABASE_URL="nosuchdialect://nowhere"), clock=clock)


class TestInitialization:
    def test_memory_seeds_sample_event_once(self, clock):
        store = init_event_store(make_settings(), clock=clock)
        store.init()
        events = store.list_events()
        assert [event.id for event in events] == [SAMPLE_EVENT_ID]
        assert events[0].check_in_secret == "campus-2026"

    def test_seed_can_be_disabled(self, clock):
        store = init_event_store(make_settings(SEED_SAMPLE_EVENT=False), clock=clock)
        assert store.list_events() == []

    def test_relational_init_is_idempotent(self, tmp_path, clock):
        """Running init against an initialized database changes nothing."""
        settings = make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'ledger.db'}")
        store = init_event_store(settings, clock=clock)
        store.add_registration(SAMPLE_EVENT_ID, "w1", "r1")
        store.init()

        assert store.mode == "relational"
        assert [event.id for event in store.list_events()] == [SAMPLE_EVENT_ID]
        assert store.has_registration(SAMPLE_EVENT_ID, "w1")
        store.close()

    def test_seed_skipped_when_catalog_has_events(self, relational_store, clock):
        relational_store.create_event(make_event_payload("mine"))
        seeded = RelationalStore(relational_store.engine, clock=clock, seed_sample_event=True)
        seeded.init()
        assert [event.id for event in seeded.list_events()] == ["mine"]

    def test_missing_ledger_columns_are_added(self, tmp_path, clock):
        """Databases created before tx refs existed are upgraded in place."""
        engine = make_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
        with engine.begin() as conn:
            conn.execute(text(
                "CREATE TABLE registrations ("
                "event_id VARCHAR(80) NOT NULL, wallet VARCHAR(128) NOT NULL, "
                "created_at DATETIME NOT NULL, PRIMARY KEY (event_id, wallet))"
            ))
            conn.execute(text(
                "CREATE TABLE claims ("
                "event_id VARCHAR(80) NOT NULL, wallet VARCHAR(128) NOT NULL, "
                "created_at DATETIME NOT NULL, PRIMARY KEY (event_id, wallet))"
            ))

        store = RelationalStore(engine, clock=clock)
        store.init()

        inspector = inspect(engine)
        assert "tx_ref" in {c["name"] for c in inspector.get_columns("registrations")}
        assert {"tx_ref", "mint_address"} <= {c["name"] for c in inspector.get_columns("claims")}
        assert "registrations_tx_ref_idx" in {i["name"] for i in inspector.get_indexes("registrations")}

        store.add_claim(SAMPLE_EVENT_ID, "w1", "claim-ref-1", "mint-1")
        assert store.get_tx_verification("claim-ref-1").mint_address == "mint-1"
        engine.dispose()


class TestFallback:
    def test_falls_back_to_memory(self, tmp_path, clock):
        """An unreachable database degrades to the memory store when allowed."""
        settings = make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'missing' / 'x.db'}")
        store = init_event_store(settings, clock=clock)

        assert store.mode == "memory"
        assert is_degraded(settings, store)
        assert store.get_event_by_id(SAMPLE_EVENT_ID) is not None

    def test_fatal_without_fallback(self, tmp_path, clock):
        settings = make_settings(
            DATABASE_URL=f"sqlite:///{tmp_path / 'missing' / 'x.db'}",
            DB_FALLBACK_TO_MEMORY=False,
        )
        with pytest.raises(BackendInitError):
            init_event_store(settings, clock=clock)

    def test_bad_url_falls_back(self, clock):
        settings = make_settings(DATABASE_URL="nosuchdialect://nowhere")
        assert init_event_store(settings, clock=clock).mode == "memory"

    def test_not_degraded(self, tmp_path, clock):
        memory_settings = make_settings()
        assert not is_degraded(memory_settings, init_event_store(memory_settings, clock=clock))

        db_settings = make_settings(DATABASE_URL=f"sqlite:///{tmp_path / 'ok.db'}")
        assert not is_degraded(db_settings, init_event_store(db_settings, clock=clock))


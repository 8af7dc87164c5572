"""Backend selection and startup initialization."""
import logging

from campus_ledger.config import Settings
from campus_ledger.store.base import Clock, EventStore
from campus_ledger.store.errors import BackendInitError
from campus_ledger.store.memory import MemoryStore
from campus_ledger.store.relational import RelationalStore
from campus_ledger.timeutil import utcnow

logger = logging.getLogger(__name__)


def create_event_store(settings: Settings, clock: Clock = utcnow) -> EventStore:
    """Relational store when ``DATABASE_URL`` is configured, in-memory otherwise."""
    if not settings.DATABASE_URL:
        logger.info("No DATABASE_URL configured; using in-memory store")
        return MemoryStore(clock=clock, seed_sample_event=settings.SEED_SAMPLE_EVENT)
    try:
        return RelationalStore(settings.DATABASE_URL, clock=clock, seed_sample_event=settings.SEED_SAMPLE_EVENT)
    except Exception as exc:
        # Bad URLs and missing DB drivers fail here, before any connection is attempted.
        raise BackendInitError(f"Cannot build relational store: {exc}") from exc


def init_event_store(settings: Settings, clock: Clock = utcnow) -> EventStore:
    """Build and initialize the configured store.

    When the relational backend fails to initialize and
    ``DB_FALLBACK_TO_MEMORY`` is set, an initialized in-memory store is
    returned instead and the service keeps running in degraded mode.
    Without the flag the ``BackendInitError`` propagates and startup aborts.
    """
    try:
        store = create_event_store(settings, clock=clock)
        store.init()
        return store
    except BackendInitError as exc:
        if not settings.DB_FALLBACK_TO_MEMORY:
            logger.error("Store initialization failed: %s", exc)
            raise
        logger.warning("Store initialization failed, falling back to in-memory store: %s", exc)
    store = MemoryStore(clock=clock, seed_sample_event=settings.SEED_SAMPLE_EVENT)
    store.init()
    return store


def is_degraded(settings: Settings, store: EventStore) -> bool:
    """True when a database was configured but the memory store is serving."""
    return bool(settings.DATABASE_URL) and store.mode == MemoryStore.mode

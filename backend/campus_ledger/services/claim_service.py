"""Lazy per-event collection resolution for the claim workflow.

This is the entry point the external claim handler calls before minting; no
route in this service reaches it.
"""
import logging
import threading
import weakref
from typing import Callable

from campus_ledger.store.base import EventStore
from campus_ledger.store.errors import NotFound

logger = logging.getLogger(__name__)

# Locks live only while some resolver holds a reference to them.
_resolve_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def _lock_for(event_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _resolve_locks.get(event_id)
        if lock is None:
            lock = threading.Lock()
            _resolve_locks[event_id] = lock
        return lock


def resolve_collection_mint(store: EventStore, event_id: str, create_collection: Callable[[], str]) -> str:
    """Return the event's collection, creating and publishing it on first use.

    Concurrent first claims in this process wait on a per-event lock, so
    ``create_collection`` runs once. Across processes the store's
    compare-and-set decides: the loser's collection is discarded and the
    stored one is returned.
    """
    with _lock_for(event_id):
        event = store.get_event_by_id(event_id)
        if event is None:
            raise NotFound(f"Event not found: {event_id}")
        if event.poap_collection:
            return event.poap_collection

        candidate = create_collection()
        winner = store.set_event_field_if_absent(event_id, "poap_collection", candidate)
        if winner != candidate:
            logger.warning("Collection for %s already set to %s; discarding %s", event_id, winner, candidate)
        else:
            logger.info("Created collection %s for event %s", candidate, event_id)
        return winner

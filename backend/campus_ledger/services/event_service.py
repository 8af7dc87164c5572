"""Event catalog service: id assignment and patch checks around the store.

The store refuses duplicate ids and merges patches blindly; this layer
derives ids for unnamed events and keeps ``start_at < end_at`` true across
partial updates.
"""
import logging
import re
from fastapi import HTTPException, status

from campus_ledger.schemas.event import EventCreate, EventOut, EventUpdate
from campus_ledger.store.base import Clock, EventStore
from campus_ledger.store.errors import Conflict
from campus_ledger.timeutil import utcnow

logger = logging.getLogger(__name__)


def slugify_event_name(name: str) -> str:
    """Lower-case, strip punctuation and hyphenate whitespace; at most 50 chars."""
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower()).strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:50]


def create_event(store: EventStore, payload: EventCreate, clock: Clock = utcnow) -> EventOut:
    """Create an event, deriving ``<slug>-<epoch-millis>`` when no id is given."""
    if payload.id is None:
        millis = int(clock().timestamp() * 1000)
        slug = slugify_event_name(payload.name) or "event"
        payload = payload.model_copy(update={"id": f"{slug}-{millis}"})

    if store.get_event_by_id(payload.id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Event id already exists")
    try:
        event = store.create_event(payload)
    except Conflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Event id already exists")

    logger.info("Created event '%s' (%s)", event.name, event.id)
    return event


def update_event(store: EventStore, event_id: str, patch: EventUpdate) -> EventOut:
    """Apply a partial update, rejecting patches that invert the event window."""
    changes = patch.changes()
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one field is required")

    current = store.get_event_by_id(event_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Event not found")

    start_at = changes.get("start_at", current.start_at)
    end_at = changes.get("end_at", current.end_at)
    if start_at >= end_at:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_at must be later than start_at")

    event = store.update_event(event_id, patch)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("Updated event %s (%s)", event_id, ", ".join(sorted(changes)))
    return event


def require_event(store: EventStore, event_id: str) -> EventOut:
    event = store.get_event_by_id(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


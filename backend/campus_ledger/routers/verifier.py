"""Verifier API routes: public lookups of wallet progress and tx refs."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query

from campus_ledger.models.event import EventStatus
from campus_ledger.schemas.event import PublicEventOut
from campus_ledger.services import event_service
from campus_ledger.store import EventStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_TX_REF_LENGTH = 8


@router.get("/events")
def list_events(
    status: str = Query("published", pattern="^(published|all)$"),
    store: EventStore = Depends(get_store),
):
    """Published events by default; ``status=all`` includes drafts and ended events."""
    events = [
        PublicEventOut.model_validate(event.model_dump())
        for event in store.list_events()
        if status == "all" or event.status == EventStatus.published
    ]
    return {"events": events}


@router.get("/events/{event_id}/wallets/{wallet}")
def verify_wallet(event_id: str, wallet: str, store: EventStore = Depends(get_store)):
    """Funnel status of one wallet for one event."""
    event = event_service.require_event(store, event_id)
    return {
        "event": {"id": event.id, "name": event.name},
        "verification": store.get_wallet_verification(event_id, wallet),
    }


@router.get("/refs/{tx_ref}")
def verify_tx_ref(tx_ref: str, store: EventStore = Depends(get_store)):
    """Resolve a tx ref to the ledger entry that recorded it."""
    if len(tx_ref) < MIN_TX_REF_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid txRef")
    verification = store.get_tx_verification(tx_ref)
    if verification is None:
        raise HTTPException(status_code=404, detail="txRef not found")

    event = store.get_event_by_id(verification.event_id)
    return {
        "verification": verification,
        "event": {"id": event.id, "name": event.name} if event else None,
    }

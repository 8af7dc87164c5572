"""Organizer API routes: catalog management, analytics and participant export."""
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from campus_ledger.schemas.analytics import DateRange
from campus_ledger.schemas.event import EventCreate, EventUpdate
from campus_ledger.schemas.participants import ParticipantsQuery, StageFilter
from campus_ledger.services import analytics_service, event_service, export_service
from campus_ledger.store import EventStore, get_store
from campus_ledger.store.errors import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


def date_range_query(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
) -> DateRange:
    try:
        return analytics_service.parse_date_range(date_from, date_to)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def participants_query(
    stage: StageFilter = Query(StageFilter.all),
    search: Optional[str] = Query(None, max_length=120),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> ParticipantsQuery:
    return ParticipantsQuery(stage=stage, search=search, limit=limit, offset=offset)


@router.get("/overview")
def get_overview(store: EventStore = Depends(get_store)):
    return {"overview": store.get_overview()}


@router.get("/analytics/retention")
def get_retention(
    date_range: DateRange = Depends(date_range_query),
    store: EventStore = Depends(get_store),
):
    """D7 retention cohorts for every day in the range, with range totals."""
    cohorts = store.get_retention_cohorts(date_range.date_from, date_range.date_to)
    return {
        "range": date_range.model_dump(by_alias=True),
        "totals": analytics_service.retention_totals(cohorts),
        "cohorts": cohorts,
    }


@router.get("/events")
def list_events(store: EventStore = Depends(get_store)):
    return {"events": store.list_events()}


@router.post("/events", status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, store: EventStore = Depends(get_store)):
    """Create an event; 409 when the id is already taken."""
    return {"event": event_service.create_event(store, payload)}


@router.get("/events/{event_id}")
def get_event(event_id: str, store: EventStore = Depends(get_store)):
    return {"event": event_service.require_event(store, event_id)}


@router.patch("/events/{event_id}")
def update_event(event_id: str, payload: EventUpdate, store: EventStore = Depends(get_store)):
    return {"event": event_service.update_event(store, event_id, payload)}


@router.get("/events/{event_id}/stats")
def get_event_stats(event_id: str, store: EventStore = Depends(get_store)):
    event_service.require_event(store, event_id)
    return {"event_id": event_id, "stats": store.get_event_stats(event_id)}


@router.get("/events/{event_id}/analytics/timeseries")
def get_event_timeseries(
    event_id: str,
    date_range: DateRange = Depends(date_range_query),
    store: EventStore = Depends(get_store),
):
    event_service.require_event(store, event_id)
    points = store.get_event_timeseries(event_id, date_range.date_from, date_range.date_to)
    return {
        "event_id": event_id,
        "range": date_range.model_dump(by_alias=True),
        "totals": analytics_service.timeseries_totals(points),
        "points": points,
    }


@router.get("/events/{event_id}/participants")
def list_participants(
    event_id: str,
    query: ParticipantsQuery = Depends(participants_query),
    store: EventStore = Depends(get_store),
):
    event_service.require_event(store, event_id)
    return {
        "event_id": event_id,
        "query": query,
        "page": store.list_participants_page(event_id, query),
    }


@router.get("/events/{event_id}/export.csv")
def export_participants(
    event_id: str,
    query: ParticipantsQuery = Depends(participants_query),
    store: EventStore = Depends(get_store),
):
    """Participants as CSV, using the same filters and paging as the JSON listing."""
    event_service.require_event(store, event_id)
    page = store.list_participants_page(event_id, query)
    logger.info("Exporting %d of %d participants for %s", len(page.rows), page.total, event_id)
    return Response(
        content=export_service.render_participants_csv(page.rows),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{export_service.export_filename(event_id)}"',
            "X-Total-Count": str(page.total),
        },
    )

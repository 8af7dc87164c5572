"""Pydantic schemas for organizer analytics."""
from datetime import date
from pydantic import BaseModel, ConfigDict, Field


class EventsByStatus(BaseModel):
    draft: int = 0
    published: int = 0
    ended: int = 0


class OrganizerOverview(BaseModel):
    events_total: int
    events_by_status: EventsByStatus
    registrations_total: int
    checkins_total: int
    claims_total: int
    overall_checkin_rate: float
    overall_claim_rate: float


class EventStats(BaseModel):
    event_id: str
    registrations: int
    checkins: int
    claims: int
    checkin_rate: float
    claim_rate: float


class TimeseriesPoint(BaseModel):
    date: date
    registrations: int = 0
    checkins: int = 0
    claims: int = 0


class RetentionPoint(BaseModel):
    cohort_date: date
    cohort_size: int = 0
    retained_d7: int = 0
    retention_rate_d7: float = 0.0


class DateRange(BaseModel):
    """Inclusive calendar-day range (UTC); serialized as ``{"from", "to"}``."""

    model_config = ConfigDict(populate_by_name=True)

    date_from: date = Field(..., alias="from")
    date_to: date = Field(..., alias="to")

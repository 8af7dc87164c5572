"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from campus_ledger.models.event import EventStatus
from campus_ledger.timeutil import as_utc


class EventCreate(BaseModel):
    id: Optional[str] = Field(None, min_length=3, max_length=80, pattern=r"^[a-z0-9-]+$")
    name: str = Field(..., min_length=3, max_length=120)
    description: str = Field(..., min_length=3, max_length=1000)
    start_at: datetime
    end_at: datetime
    check_in_secret: str = Field(..., min_length=4, max_length=128)
    ticket_price_lamports: int = Field(0, ge=0)
    poap_collection: Optional[str] = Field(None, min_length=1)
    status: EventStatus = EventStatus.draft

    @field_validator("start_at", "end_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_window(self) -> EventCreate:
        if self.start_at >= self.end_at:
            raise ValueError("end_at must be later than start_at")
        return self


class EventUpdate(BaseModel):
    """Partial patch: only fields the caller sets are applied."""

    name: Optional[str] = Field(None, min_length=3, max_length=120)
    description: Optional[str] = Field(None, min_length=3, max_length=1000)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    check_in_secret: Optional[str] = Field(None, min_length=4, max_length=128)
    ticket_price_lamports: Optional[int] = Field(None, ge=0)
    poap_collection: Optional[str] = Field(None, min_length=1)
    status: Optional[EventStatus] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def changes(self) -> dict:
        """Fields explicitly set by the caller.

        ``poap_collection`` may be cleared with an explicit null; a null for any
        other field counts as absent.
        """
        updates = self.model_dump(exclude_unset=True)
        return {
            field: value
            for field, value in updates.items()
            if value is not None or field in NULLABLE_EVENT_FIELDS
        }


class EventOut(BaseModel):
    id: str
    name: str
    description: str
    start_at: datetime
    end_at: datetime
    check_in_secret: str
    ticket_price_lamports: int
    poap_collection: Optional[str] = None
    status: EventStatus

    model_config = {"from_attributes": True}

    @field_validator("start_at", "end_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class PublicEventOut(BaseModel):
    """Event as shown to verifiers: no check-in secret or pricing."""

    id: str
    name: str
    description: str
    start_at: datetime
    end_at: datetime
    status: EventStatus
    poap_collection: Optional[str] = None

    model_config = {"from_attributes": True}


NULLABLE_EVENT_FIELDS = frozenset({"poap_collection"})

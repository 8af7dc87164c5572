"""Pydantic schemas for the participant listing and export."""
from __future__ import annotations
import enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class StageFilter(str, enum.Enum):
    all = "all"
    registered = "registered"
    checked_in = "checked-in"
    claimed = "claimed"


class ParticipantRow(BaseModel):
    wallet: str
    registered_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None


class ParticipantsQuery(BaseModel):
    stage: StageFilter = StageFilter.all
    search: Optional[str] = Field(None, max_length=120)
    limit: int = Field(200, ge=1, le=1000)
    offset: int = Field(0, ge=0)

    @field_validator("search")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class ParticipantsPage(BaseModel):
    rows: list[ParticipantRow]
    total: int
    limit: int
    offset: int

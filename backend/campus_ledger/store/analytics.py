"""Analytics computations shared by both store backends.

Backends only fetch raw counts and timestamps; everything derived from them
(rates, day bucketing, retention cohorts) is computed here so the two
engines cannot drift apart.
"""
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

from campus_ledger.models.event import EventStatus
from campus_ledger.schemas.analytics import (
    EventStats,
    EventsByStatus,
    OrganizerOverview,
    RetentionPoint,
    TimeseriesPoint,
)
from campus_ledger.timeutil import as_utc, iter_days, utc_day

RETENTION_WINDOW = timedelta(days=7)


def ratio(numerator: int, denominator: int) -> float:
    """``numerator / denominator`` rounded to 4 places, 0 when the denominator is 0."""
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator, 4)


def build_overview(
    status_counts: Mapping[str, int],
    registrations: int,
    checkins: int,
    claims: int,
) -> OrganizerOverview:
    by_status = EventsByStatus(**{EventStatus(k).value: v for k, v in status_counts.items()})
    return OrganizerOverview(
        events_total=by_status.draft + by_status.published + by_status.ended,
        events_by_status=by_status,
        registrations_total=registrations,
        checkins_total=checkins,
        claims_total=claims,
        overall_checkin_rate=ratio(checkins, registrations),
        overall_claim_rate=ratio(claims, checkins),
    )


def build_event_stats(event_id: str, registrations: int, checkins: int, claims: int) -> EventStats:
    return EventStats(
        event_id=event_id,
        registrations=registrations,
        checkins=checkins,
        claims=claims,
        checkin_rate=ratio(checkins, registrations),
        claim_rate=ratio(claims, checkins),
    )


def build_timeseries(
    date_from: date,
    date_to: date,
    registrations: Iterable[datetime],
    checkins: Iterable[datetime],
    claims: Iterable[datetime],
) -> list[TimeseriesPoint]:
    """One zero-filled point per day, counting instants by their UTC date.

    Instants outside the range are ignored.
    """
    timeline = {day: TimeseriesPoint(date=day) for day in iter_days(date_from, date_to)}
    for field, instants in (
        ("registrations", registrations),
        ("checkins", checkins),
        ("claims", claims),
    ):
        for instant in instants:
            point = timeline.get(utc_day(instant))
            if point is not None:
                setattr(point, field, getattr(point, field) + 1)
    return list(timeline.values())


def first_registrations(touches: Iterable[tuple[str, datetime]]) -> dict[str, datetime]:
    """Earliest registration instant per wallet."""
    anchors: dict[str, datetime] = {}
    for wallet, at in touches:
        at = as_utc(at)
        current = anchors.get(wallet)
        if current is None or at < current:
            anchors[wallet] = at
    return anchors


def build_retention(
    date_from: date,
    date_to: date,
    anchors: Mapping[str, datetime],
    touches: Iterable[tuple[str, datetime]],
) -> list[RetentionPoint]:
    """D7 retention per cohort day.

    ``anchors`` maps each wallet to its first-ever registration; ``touches``
    holds (wallet, instant) registrations, at least those that could fall in
    a retention window. A wallet is retained when it registers again strictly
    after its anchor and no later than seven days after it.
    """
    cohorts: dict[date, list[str]] = defaultdict(list)
    for wallet, anchor in anchors.items():
        day = utc_day(anchor)
        if date_from <= day <= date_to:
            cohorts[day].append(wallet)

    retained: set[str] = set()
    for wallet, at in touches:
        anchor = anchors.get(wallet)
        if anchor is None or wallet in retained:
            continue
        at = as_utc(at)
        if anchor < at <= anchor + RETENTION_WINDOW:
            retained.add(wallet)

    points = []
    for day in iter_days(date_from, date_to):
        members = cohorts.get(day, [])
        kept = sum(1 for wallet in members if wallet in retained)
        points.append(RetentionPoint(
            cohort_date=day,
            cohort_size=len(members),
            retained_d7=kept,
            retention_rate_d7=ratio(kept, len(members)),
        ))
    return points

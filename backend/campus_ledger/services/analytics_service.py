"""Organizer analytics: query range parsing and response totals."""
from datetime import date, timedelta
from typing import Optional

from campus_ledger.schemas.analytics import DateRange, RetentionPoint, TimeseriesPoint
from campus_ledger.store.analytics import ratio
from campus_ledger.store.errors import ValidationError
from campus_ledger.timeutil import utcnow

MAX_RANGE_DAYS = 366
DEFAULT_RANGE_DAYS = 30


def parse_date_range(
    date_from: Optional[date],
    date_to: Optional[date],
    today: Optional[date] = None,
) -> DateRange:
    """Fill in the default window (the last 30 days) and check the bounds.

    Raises ``ValidationError`` when ``from`` is after ``to`` or the range
    covers more than 366 days.
    """
    today = today or utcnow().date()
    date_to = date_to or today
    date_from = date_from or (date_to - timedelta(days=DEFAULT_RANGE_DAYS - 1))
    if date_from > date_to:
        raise ValidationError("from must be less than or equal to to")
    if (date_to - date_from).days + 1 > MAX_RANGE_DAYS:
        raise ValidationError(f"date range cannot exceed {MAX_RANGE_DAYS} days")
    return DateRange(date_from=date_from, date_to=date_to)


def timeseries_totals(points: list[TimeseriesPoint]) -> dict:
    return {
        "registrations": sum(point.registrations for point in points),
        "checkins": sum(point.checkins for point in points),
        "claims": sum(point.claims for point in points),
    }


def retention_totals(cohorts: list[RetentionPoint]) -> dict:
    cohort_size = sum(cohort.cohort_size for cohort in cohorts)
    retained = sum(cohort.retained_d7 for cohort in cohorts)
    return {
        "cohort_size": cohort_size,
        "retained_d7": retained,
        "retention_rate_d7": ratio(retained, cohort_size),
    }

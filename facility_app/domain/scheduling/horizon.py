"""Upcoming visits over a bounded horizon"""

from datetime import date, timedelta
from typing import Optional

from ...config import SCHEDULE_MAX_HORIZON_DAYS
from .overrides import classify
from .resolver import resolve_indexed
from .schemas import Occurrence, ScheduleRecord


def end_of_year(day: date) -> date:
    return date(day.year, 12, 31)


def upcoming(
    records: list[ScheduleRecord],
    from_date: date,
    horizon_end: Optional[date] = None,
) -> list[Occurrence]:
    """
    Every occurrence from `from_date` to `horizon_end` (inclusive), sorted by
    date then time of day.

    The horizon defaults to December 31 of `from_date`'s year so a schedule
    never projects into a year nobody has reviewed yet. Unbounded rules are
    cut at the horizon like any other.
    """
    if horizon_end is None:
        horizon_end = end_of_year(from_date)
    if horizon_end < from_date:
        return []

    span = (horizon_end - from_date).days + 1
    if span > SCHEDULE_MAX_HORIZON_DAYS:
        raise ValueError(
            f"Horizon of {span} days exceeds the maximum of {SCHEDULE_MAX_HORIZON_DAYS} days"
        )

    index = classify(records)
    occurrences: list[Occurrence] = []

    for offset in range(span):
        day = from_date + timedelta(days=offset)
        for record in resolve_indexed(day, index):
            occurrences.append(Occurrence(day=day, record=record))

    return sorted(occurrences, key=lambda occurrence: (occurrence.day, occurrence.record.time))

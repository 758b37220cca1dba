"""Occurrence resolution - the effective visits of one calendar date"""

from datetime import date, timedelta

from ...shared.validators import weekday_name
from .overrides import OverrideIndex, classify
from .recurrence import fires
from .schemas import ScheduleRecord


def occurs_on(record: ScheduleRecord, day: date) -> bool:
    """True when a template or standalone record has a visit on `day`, before overrides"""
    if record.is_template:
        return fires(day, record.recurrence_rule)
    return record.active and record.weekday == weekday_name(day)


def resolve_indexed(day: date, index: OverrideIndex) -> list[ScheduleRecord]:
    """
    Visits scheduled on `day`, in precedence order:

    1. Replacement overrides for the date. If any exist they are the whole
       answer for that date.
    2. Active standalone records on the date's weekday.
    3. Templates whose rule fires on the date.

    Cancellations suppress steps 2 and 3 for their contract. The result is
    de-duplicated by record id and keeps the input order.
    """
    replacements = index.replacements_on(day)
    if replacements:
        return replacements

    resolved: list[ScheduleRecord] = []
    seen: set[str] = set()

    for record in index.standalone:
        if not occurs_on(record, day):
            continue
        if index.is_cancelled(record.contract_id, day):
            continue
        if record.id not in seen:
            seen.add(record.id)
            resolved.append(record)

    for record in index.templates:
        if not occurs_on(record, day):
            continue
        if index.is_cancelled(record.contract_id, day):
            continue
        if index.has_replacement(record.contract_id, day):
            continue
        if record.id not in seen:
            seen.add(record.id)
            resolved.append(record)

    return resolved


def resolve(day: date, records: list[ScheduleRecord]) -> list[ScheduleRecord]:
    """Visits scheduled on `day` given the full current record set"""
    return resolve_indexed(day, classify(records))


def resolve_range(
    records: list[ScheduleRecord], period_start: date, period_end: date
) -> dict[date, list[ScheduleRecord]]:
    """Resolve every date of [period_start, period_end], e.g. one calendar month"""
    index = classify(records)
    days: dict[date, list[ScheduleRecord]] = {}

    current = period_start
    while current <= period_end:
        days[current] = resolve_indexed(current, index)
        current += timedelta(days=1)

    return days

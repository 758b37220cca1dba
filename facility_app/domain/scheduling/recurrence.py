"""Recurrence rule evaluation"""

from datetime import date, timedelta
from typing import Iterator, Optional

from .schemas import RecurrenceRule


def fires(day: date, rule: RecurrenceRule) -> bool:
    """True when the rule produces a visit on `day`"""
    if day < rule.start_date:
        return False
    if rule.end_date is not None and day > rule.end_date:
        return False
    return (day - rule.start_date).days % rule.interval == 0


def iter_firings(rule: RecurrenceRule, period_start: date, period_end: date) -> Iterator[date]:
    """
    Yield every firing date of `rule` inside [period_start, period_end].

    Steps by the interval from the first firing on or after period_start
    instead of testing every day of the period.
    """
    first = max(period_start, rule.start_date)
    last = period_end if rule.end_date is None else min(period_end, rule.end_date)
    if first > last:
        return

    offset = (first - rule.start_date).days % rule.interval
    if offset:
        first += timedelta(days=rule.interval - offset)

    current = first
    while current <= last:
        yield current
        current += timedelta(days=rule.interval)


def next_firing(rule: RecurrenceRule, on_or_after: date) -> Optional[date]:
    """First firing date on or after `on_or_after`, or None once the rule has ended"""
    first = max(on_or_after, rule.start_date)
    return next(iter_firings(rule, first, first + timedelta(days=rule.interval - 1)), None)


def truncate_rule(rule: RecurrenceRule, stop_before: date) -> Optional[RecurrenceRule]:
    """
    Return the rule ending the day before `stop_before`.

    Returns None when no firing date would remain. A rule that already ends
    earlier is returned unchanged.
    """
    new_end = stop_before - timedelta(days=1)
    if new_end < rule.start_date:
        return None
    if rule.end_date is not None and rule.end_date <= new_end:
        return rule
    return rule.model_copy(update={"end_date": new_end})

"""
Override index

Sorts a record set into the three roles the resolver needs:
standalone weekday visits, recurring templates and date-specific
overrides. Overrides are keyed by (contract_id, date) and split into
replacements (active) and cancellations (inactive).

Records written by this service link an override to its template with
`override_of`. Older records only carry the date as a marker inside
`notes` or embedded in the id, so those markers are still honoured.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ...shared.validators import parse_date_string
from .schemas import ScheduleRecord

logger = logging.getLogger(__name__)

OverrideKey = tuple[str, date]

CANCELLED_MARKER = "[CANCELLED {day}]"
REPLACEMENT_MARKER = "[{day}]"

# [CANCELLED 2025-01-13], [CANCELADO 2025-01-13] or [2025-01-13]
_ISO_MARKER = re.compile(r"\[(?:CANCELLED |CANCELADO )?(\d{4}-\d{2}-\d{2})\]")
# [13/01/2025]
_LOCAL_MARKER = re.compile(r"\[(\d{2})/(\d{2})/(\d{4})\]")
_ID_DATE = re.compile(r"(\d{4}-\d{2}-\d{2})")


def marker_for(day: date, cancelled: bool) -> str:
    template = CANCELLED_MARKER if cancelled else REPLACEMENT_MARKER
    return template.format(day=day.isoformat())


def _parse_marker_date(text: Optional[str]) -> Optional[date]:
    if not text:
        return None

    for match in _ISO_MARKER.finditer(text):
        try:
            return parse_date_string(match.group(1))
        except ValueError:
            continue

    for match in _LOCAL_MARKER.finditer(text):
        day, month, year = match.groups()
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            continue

    return None


def override_date(record: ScheduleRecord) -> Optional[date]:
    """
    Date a non-recurring record overrides, or None for a plain standalone
    record. Templates never override anything.
    """
    if record.recurrence_rule is not None:
        return None
    if record.override_of is not None:
        return record.override_of.occurrence_date

    marked = _parse_marker_date(record.notes)
    if marked is not None:
        return marked

    for match in _ID_DATE.finditer(record.id):
        try:
            return parse_date_string(match.group(1))
        except ValueError:
            continue

    return None


@dataclass
class OverrideIndex:
    standalone: list[ScheduleRecord] = field(default_factory=list)
    templates: list[ScheduleRecord] = field(default_factory=list)
    replacements: dict[OverrideKey, ScheduleRecord] = field(default_factory=dict)
    cancellations: dict[OverrideKey, ScheduleRecord] = field(default_factory=dict)
    # Later overrides that collided with an already indexed key
    duplicates: list[ScheduleRecord] = field(default_factory=list)

    def replacements_on(self, day: date) -> list[ScheduleRecord]:
        return [record for (_, key_day), record in self.replacements.items() if key_day == day]

    def is_cancelled(self, contract_id: str, day: date) -> bool:
        return (contract_id, day) in self.cancellations

    def has_replacement(self, contract_id: str, day: date) -> bool:
        return (contract_id, day) in self.replacements


def classify(records: list[ScheduleRecord]) -> OverrideIndex:
    """Place every record in exactly one bucket, in one pass"""
    index = OverrideIndex()

    for record in records:
        if record.recurrence_rule is not None:
            index.templates.append(record)
            continue

        day = override_date(record)
        if day is None:
            index.standalone.append(record)
            continue

        key = (record.contract_id, day)
        bucket = index.replacements if record.active else index.cancellations
        if key in bucket:
            # First one encountered wins
            index.duplicates.append(record)
            continue
        bucket[key] = record

    if index.duplicates:
        logger.warning(
            f"⚠️ {len(index.duplicates)} duplicate override(s) ignored: "
            f"{[record.id for record in index.duplicates]}"
        )

    return index

"""Schedule service - Record management, occurrence queries and series edits"""

import logging
import re
from datetime import date, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models_schedule import ScheduleEntry, generate_public_id
from ...shared.validators import weekday_name
from ...utils.sanitization import sanitize_string
from .horizon import upcoming
from .overrides import classify, marker_for, override_date
from .recurrence import next_firing, truncate_rule
from .repository import ScheduleRepository
from .resolver import occurs_on, resolve, resolve_range
from .schemas import (
    EditScope,
    MutationAction,
    MutationResult,
    Occurrence,
    OccurrenceEdit,
    OverrideOf,
    PurgeResult,
    RecurrenceRule,
    ScheduleRecord,
    ScheduleRecordCreate,
    ScheduleRecordUpdate,
)

logger = logging.getLogger(__name__)

_ANY_MARKER = re.compile(r"\s*\[(?:CANCELLED |CANCELADO )?(?:\d{4}-\d{2}-\d{2}|\d{2}/\d{2}/\d{4})\]")

_FREE_TEXT_FIELDS = ("contract_name", "address", "notes")


def _for_contract(records: list[ScheduleRecord], contract_id: Optional[str]) -> list[ScheduleRecord]:
    # Applied to resolved visits only, so replacement precedence is unchanged
    if not contract_id:
        return records
    return [record for record in records if record.contract_id == contract_id]


def _with_marker(notes: Optional[str], day: date, cancelled: bool) -> str:
    """Replace any date marker in `notes` with the one for `day`"""
    text = _ANY_MARKER.sub("", notes or "").strip()
    marker = marker_for(day, cancelled)
    return f"{text} {marker}" if text else marker


class ScheduleService:
    """Service layer for the visit schedule"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_records(self, contract_id: Optional[str] = None) -> list[ScheduleRecord]:
        """Fetch the full current record set"""
        return [self.repo.to_record(entry) for entry in self.repo.get_records(self.db, contract_id)]

    def get_entry(self, record_id: str) -> ScheduleEntry:
        entry = self.repo.get_record_by_id(self.db, record_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Schedule record not found")
        return entry

    def get_record(self, record_id: str) -> ScheduleRecord:
        return self.repo.to_record(self.get_entry(record_id))

    def resolve_day(self, day: date, contract_id: Optional[str] = None) -> list[ScheduleRecord]:
        """Effective visits on one date, optionally for one contract"""
        return _for_contract(resolve(day, self.get_records()), contract_id)

    def calendar_month(
        self, year: int, month: int, contract_id: Optional[str] = None
    ) -> dict[date, list[ScheduleRecord]]:
        """Effective visits for every day of a month"""
        try:
            first = date(year, month, 1)
            last = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        days = resolve_range(self.get_records(), first, last - timedelta(days=1))
        return {day: _for_contract(records, contract_id) for day, records in days.items()}

    def upcoming(
        self,
        from_date: Optional[date] = None,
        until: Optional[date] = None,
        contract_id: Optional[str] = None,
    ) -> list[Occurrence]:
        """Upcoming visits from `from_date` (default today) to the horizon"""
        try:
            occurrences = upcoming(self.get_records(), from_date or date.today(), until)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if contract_id:
            occurrences = [o for o in occurrences if o.record.contract_id == contract_id]
        return occurrences

    # ------------------------------------------------------------------
    # Record CRUD
    # ------------------------------------------------------------------

    def create_record(self, data: ScheduleRecordCreate) -> ScheduleRecord:
        """Create a visit, a recurring series or an override"""
        fields = self._sanitized(data.model_dump(exclude_none=True))
        record = self._build(id=generate_public_id(), **fields)
        self._ensure_unique_override(record)

        logger.info(f"📝 Creating schedule record for contract_id: {record.contract_id}")
        try:
            entry = self.repo.create_record(
                self.db, public_id=record.id, **self.repo.to_columns(record)
            )
        except SQLAlchemyError as e:
            raise self._persistence_failure("create schedule record", e)
        return self.repo.to_record(entry)

    def update_record(self, record_id: str, data: ScheduleRecordUpdate) -> ScheduleRecord:
        """Update a record in place (a whole-series edit when it is a template)"""
        entry = self.get_entry(record_id)
        current = self.repo.to_record(entry)

        updates = self._sanitized(data.model_dump(exclude_unset=True))
        record = self._build(**{**current.model_dump(), **updates})
        if override_date(record) != override_date(current):
            self._ensure_unique_override(record)

        try:
            entry = self.repo.update_record(self.db, entry, **self.repo.to_columns(record))
        except SQLAlchemyError as e:
            raise self._persistence_failure("update schedule record", e)
        return self.repo.to_record(entry)

    def delete_record(self, record_id: str) -> dict:
        """Delete a record"""
        entry = self.get_entry(record_id)
        try:
            self.repo.delete_record(self.db, entry)
        except SQLAlchemyError as e:
            raise self._persistence_failure("delete schedule record", e)
        return {"message": "Schedule record deleted successfully"}

    # ------------------------------------------------------------------
    # Series edits
    # ------------------------------------------------------------------

    def cancel_occurrence(
        self,
        record_id: str,
        day: date,
        scope: EditScope = EditScope.SINGLE,
        template_id: Optional[str] = None,
    ) -> MutationResult:
        """Cancel one occurrence, the series from that date on, or the whole series"""
        records = self.get_records()
        by_id = {record.id: record for record in records}
        own = by_id.get(record_id)
        origin = by_id.get(template_id or record_id)

        logger.info(
            f"🗑️ Cancelling occurrence {record_id} on {day.isoformat()} (scope={scope.value})"
        )

        if scope is EditScope.ALL:
            target = origin or own
            if target is None:
                return self._noop(f"No schedule record {record_id}")
            action = (
                MutationAction.SERIES_DELETED if target.is_template else MutationAction.RECORD_DELETED
            )
            return self._delete(target.id, action)

        if scope is EditScope.SINGLE:
            if own is not None and override_date(own) is not None:
                return self._update(
                    own.id,
                    MutationAction.OVERRIDE_UPDATED,
                    active=False,
                    notes=_with_marker(own.notes, override_date(own), cancelled=True),
                )
            if origin is None:
                return self._fallback_delete(own, record_id, template_id)
            if not occurs_on(origin, day):
                return self._noop(f"{origin.id} has no visit on {day.isoformat()}")

            existing = self._find_override(records, origin.contract_id, day)
            if existing is not None:
                return self._update(
                    existing.id,
                    MutationAction.OVERRIDE_UPDATED,
                    active=False,
                    notes=_with_marker(existing.notes, day, cancelled=True),
                )
            return self._create_override(origin, day, cancelled=True)

        # EditScope.FUTURE
        if origin is None or origin.recurrence_rule is None:
            return self._fallback_delete(own, record_id, template_id)

        truncated = truncate_rule(origin.recurrence_rule, day)
        if truncated is None:
            return self._delete(origin.id, MutationAction.SERIES_DELETED)
        if truncated == origin.recurrence_rule:
            return self._noop(f"Series {origin.id} already ends before {day.isoformat()}")
        return self._update(
            origin.id,
            MutationAction.SERIES_TRUNCATED,
            recurrence_rule=truncated.model_dump(mode="json"),
        )

    def edit_occurrence(
        self,
        record_id: str,
        day: date,
        changes: OccurrenceEdit,
        scope: EditScope = EditScope.SINGLE,
        template_id: Optional[str] = None,
    ) -> MutationResult:
        """Edit one occurrence, the series from that date on, or the whole series"""
        records = self.get_records()
        by_id = {record.id: record for record in records}
        own = by_id.get(record_id)
        origin = by_id.get(template_id or record_id)

        values = self._sanitized(changes.model_dump(exclude_none=True))
        interval = values.pop("interval", None)

        logger.info(f"✏️ Editing occurrence {record_id} on {day.isoformat()} (scope={scope.value})")

        if scope is EditScope.ALL:
            if origin is None:
                raise HTTPException(status_code=404, detail="Schedule record not found")
            if interval is not None and origin.recurrence_rule is not None:
                values["recurrence_rule"] = origin.recurrence_rule.model_copy(
                    update={"interval": interval}
                ).model_dump(mode="json")
            return self._update(origin.id, MutationAction.SERIES_UPDATED, **values)

        if scope is EditScope.SINGLE:
            if own is not None and override_date(own) is not None:
                notes = values.pop("notes", own.notes)
                return self._update(
                    own.id,
                    MutationAction.OVERRIDE_UPDATED,
                    active=True,
                    notes=_with_marker(notes, override_date(own), cancelled=False),
                    **values,
                )
            if origin is None:
                return self._fallback_delete(own, record_id, template_id)
            if not occurs_on(origin, day):
                return self._noop(f"{origin.id} has no visit on {day.isoformat()}")

            existing = self._find_override(records, origin.contract_id, day)
            if existing is not None:
                notes = values.pop("notes", origin.notes)
                return self._update(
                    existing.id,
                    MutationAction.OVERRIDE_UPDATED,
                    active=True,
                    notes=_with_marker(notes, day, cancelled=False),
                    **values,
                )
            return self._create_override(origin, day, cancelled=False, **values)

        # EditScope.FUTURE
        if origin is None or origin.recurrence_rule is None:
            return self._fallback_delete(own, record_id, template_id)

        rule = origin.recurrence_rule
        # The tail starts on a real visit, never on a date the series skips
        anchor = next_firing(rule, day)
        if anchor is None:
            return self._noop(f"Series {origin.id} has no visits from {day.isoformat()} on")

        tail_rule = RecurrenceRule(
            interval=interval or rule.interval, start_date=anchor, end_date=rule.end_date
        )
        truncated = truncate_rule(rule, anchor)
        if truncated is None:
            # Editing from the first date on is an edit of the whole series
            values["recurrence_rule"] = tail_rule.model_dump(mode="json")
            return self._update(origin.id, MutationAction.SERIES_UPDATED, **values)

        tail = self._build(
            **{
                **origin.model_dump(),
                **values,
                "id": generate_public_id(),
                "recurrence_rule": tail_rule,
            }
        )
        try:
            self.repo.split_series(
                self.db,
                self.get_entry(origin.id),
                truncated.model_dump(mode="json"),
                public_id=tail.id,
                **self.repo.to_columns(tail),
            )
        except SQLAlchemyError as e:
            raise self._persistence_failure("split series", e)

        logger.info(f"✅ Series {origin.id} split at {anchor.isoformat()}, new series {tail.id}")
        return MutationResult(
            action=MutationAction.SERIES_SPLIT,
            record_id=tail.id,
            message=f"Series {origin.id} now ends before {anchor.isoformat()}",
        )

    def purge_cancelled(self, contract_id: Optional[str] = None) -> PurgeResult:
        """
        Delete cancelled records and overrides whose originating record no
        longer exists. Nothing else ever removes them.
        """
        records = self.get_records(contract_id)
        existing_ids = {entry.public_id for entry in self.repo.get_records(self.db)}

        doomed = []
        for record in records:
            if record.is_template:
                continue
            if not record.active:
                doomed.append(record.id)
            elif record.override_of and record.override_of.template_id not in existing_ids:
                doomed.append(record.id)

        if not doomed:
            return PurgeResult(deleted_count=0, message="Nothing to purge")

        try:
            deleted_count = self.repo.batch_delete_records(self.db, doomed)
        except SQLAlchemyError as e:
            raise self._persistence_failure("purge cancelled records", e)

        logger.info(f"✅ Purged {deleted_count} cancelled/orphaned schedule record(s)")
        return PurgeResult(
            deleted_count=deleted_count,
            message=f"Successfully purged {deleted_count} record(s)",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sanitized(values: dict[str, Any]) -> dict[str, Any]:
        for key in _FREE_TEXT_FIELDS:
            if key in values:
                values[key] = sanitize_string(values[key])
        return values

    @staticmethod
    def _build(**fields) -> ScheduleRecord:
        try:
            return ScheduleRecord(**fields)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            raise HTTPException(status_code=422, detail=errors)

    def _ensure_unique_override(self, record: ScheduleRecord) -> None:
        day = override_date(record)
        if day is None:
            return

        others = [other for other in self.get_records() if other.id != record.id]
        if self._find_override(others, record.contract_id, day) is not None:
            raise HTTPException(
                status_code=409,
                detail=f"An override for contract {record.contract_id} on {day.isoformat()} already exists",
            )

    @staticmethod
    def _find_override(
        records: list[ScheduleRecord], contract_id: str, day: date
    ) -> Optional[ScheduleRecord]:
        index = classify(records)
        key = (contract_id, day)
        return index.replacements.get(key) or index.cancellations.get(key)

    def _create_override(
        self, origin: ScheduleRecord, day: date, cancelled: bool, **values
    ) -> MutationResult:
        notes = values.pop("notes", origin.notes)
        override = self._build(
            id=generate_public_id(),
            contract_id=origin.contract_id,
            contract_name=values.pop("contract_name", origin.contract_name),
            address=values.pop("address", origin.address),
            weekday=weekday_name(day),
            time=values.pop("time", origin.time),
            notes=_with_marker(notes, day, cancelled),
            active=not cancelled,
            override_of=OverrideOf(template_id=origin.id, occurrence_date=day),
        )
        try:
            self.repo.create_record(
                self.db, public_id=override.id, **self.repo.to_columns(override)
            )
        except SQLAlchemyError as e:
            raise self._persistence_failure("create override", e)

        return MutationResult(
            action=MutationAction.OVERRIDE_CREATED,
            record_id=override.id,
            message=f"{'Cancelled' if cancelled else 'Replaced'} {day.isoformat()} of {origin.id}",
        )

    def _update(self, record_id: str, action: MutationAction, **updates) -> MutationResult:
        entry = self.get_entry(record_id)
        # Validate the result before anything is written
        self._build(**{**self.repo.to_record(entry).model_dump(), **updates})
        try:
            self.repo.update_record(self.db, entry, **updates)
        except SQLAlchemyError as e:
            raise self._persistence_failure("update schedule record", e)
        return MutationResult(action=action, record_id=record_id, message=f"Updated {record_id}")

    def _delete(self, record_id: str, action: MutationAction) -> MutationResult:
        entry = self.get_entry(record_id)
        try:
            self.repo.delete_record(self.db, entry)
        except SQLAlchemyError as e:
            raise self._persistence_failure("delete schedule record", e)
        return MutationResult(action=action, record_id=record_id, message=f"Deleted {record_id}")

    def _fallback_delete(
        self, own: Optional[ScheduleRecord], record_id: str, template_id: Optional[str]
    ) -> MutationResult:
        if own is None:
            return self._noop(f"No schedule record {record_id}")

        logger.warning(
            f"⚠️ Originating record {template_id or record_id} missing or not recurring, "
            f"deleting occurrence record {record_id} instead"
        )
        return self._delete(own.id, MutationAction.RECORD_DELETED)

    @staticmethod
    def _noop(message: str) -> MutationResult:
        return MutationResult(action=MutationAction.NOOP, message=message)

    def _persistence_failure(self, action: str, e: SQLAlchemyError) -> HTTPException:
        self.db.rollback()
        logger.error(f"❌ Failed to {action}: {e}")
        return HTTPException(status_code=500, detail=f"Failed to {action}")

"""Schedule repository - Database operations for schedule records"""

from typing import Any, Optional

from sqlalchemy.orm import Session

from ...models_schedule import ScheduleEntry
from .schemas import OverrideOf, ScheduleRecord


class ScheduleRepository:
    """Repository for schedule record database operations"""

    @staticmethod
    def get_records(db: Session, contract_id: Optional[str] = None) -> list[ScheduleEntry]:
        """Get all schedule records in insertion order"""
        query = db.query(ScheduleEntry)

        if contract_id:
            query = query.filter(ScheduleEntry.contract_id == contract_id)

        return query.order_by(ScheduleEntry.id).all()

    @staticmethod
    def get_record_by_id(db: Session, record_id: str) -> Optional[ScheduleEntry]:
        """Get a specific schedule record by ID"""
        return db.query(ScheduleEntry).filter(ScheduleEntry.public_id == record_id).first()

    @staticmethod
    def create_record(db: Session, **record_data) -> ScheduleEntry:
        """Create a new schedule record"""
        entry = ScheduleEntry(**record_data)
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def update_record(db: Session, entry: ScheduleEntry, **updates) -> ScheduleEntry:
        """Update a schedule record with the provided column values"""
        for key, value in updates.items():
            if hasattr(entry, key):
                setattr(entry, key, value)

        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def delete_record(db: Session, entry: ScheduleEntry) -> None:
        """Delete a schedule record"""
        db.delete(entry)
        db.commit()

    @staticmethod
    def batch_delete_records(db: Session, record_ids: list[str]) -> int:
        """
        Batch delete multiple schedule records.
        Returns the number of records deleted.
        """
        deleted_count = 0

        for record_id in record_ids:
            entry = db.query(ScheduleEntry).filter(ScheduleEntry.public_id == record_id).first()
            if entry:
                db.delete(entry)
                deleted_count += 1

        db.commit()
        return deleted_count

    @staticmethod
    def split_series(
        db: Session, template: ScheduleEntry, truncated_rule: dict[str, Any], **tail_data
    ) -> ScheduleEntry:
        """End a template's rule early and start a new template for the tail, in one commit"""
        template.recurrence_rule = truncated_rule
        tail = ScheduleEntry(**tail_data)
        db.add(tail)

        db.commit()
        db.refresh(template)
        db.refresh(tail)
        return tail

    @staticmethod
    def to_record(entry: ScheduleEntry) -> ScheduleRecord:
        """Convert a stored row into the record shape the engine works on"""
        override_of = None
        if entry.override_template_id and entry.override_date:
            override_of = OverrideOf(
                template_id=entry.override_template_id,
                occurrence_date=entry.override_date,
            )

        return ScheduleRecord(
            id=entry.public_id,
            contract_id=entry.contract_id,
            contract_name=entry.contract_name or "",
            address=entry.address,
            weekday=entry.weekday,
            time=entry.time,
            notes=entry.notes,
            active=bool(entry.active),
            recurrence_rule=entry.recurrence_rule,
            override_of=override_of,
        )

    @staticmethod
    def to_columns(record: ScheduleRecord) -> dict[str, Any]:
        """Column values for storing a record (everything except its ids)"""
        return {
            "contract_id": record.contract_id,
            "contract_name": record.contract_name,
            "address": record.address,
            "weekday": record.weekday,
            "time": record.time,
            "notes": record.notes,
            "active": record.active,
            "recurrence_rule": (
                record.recurrence_rule.model_dump(mode="json") if record.recurrence_rule else None
            ),
            "override_template_id": (
                record.override_of.template_id if record.override_of else None
            ),
            "override_date": record.override_of.occurrence_date if record.override_of else None,
        }

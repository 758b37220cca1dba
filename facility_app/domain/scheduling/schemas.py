"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_validator, model_validator

from ...config import DEFAULT_VISIT_LABEL, DEFAULT_VISIT_TIME
from ...shared.validators import validate_time_of_day, validate_weekday

# Calendar-style frequencies are stored as plain day intervals
FREQUENCY_INTERVALS = {
    "daily": 1,
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}


class RecurrenceType(str, Enum):
    DAY_INTERVAL = "day_interval"
    CALENDAR_WEEKLY = "calendar_weekly"  # reserved
    CALENDAR_MONTHLY = "calendar_monthly"  # reserved


class RecurrenceRule(BaseModel):
    """Every `interval` days from `start_date` up to `end_date` (both inclusive)"""

    model_config = ConfigDict(frozen=True)

    type: RecurrenceType = RecurrenceType.DAY_INTERVAL
    interval: int
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="before")
    @classmethod
    def expand_frequency(cls, data: Any) -> Any:
        # Accept {"frequency": "weekly", ...} as shorthand for {"interval": 7, ...}
        if isinstance(data, dict) and "frequency" in data:
            data = dict(data)
            frequency = data.pop("frequency")
            if frequency not in FREQUENCY_INTERVALS:
                raise ValueError(
                    f"frequency must be one of {', '.join(FREQUENCY_INTERVALS)}"
                )
            data.setdefault("interval", FREQUENCY_INTERVALS[frequency])
        return data

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: RecurrenceType) -> RecurrenceType:
        if v is not RecurrenceType.DAY_INTERVAL:
            raise ValueError(f"Recurrence type '{v.value}' is not supported, use 'day_interval'")
        return v

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("interval must be at least 1 day")
        return v

    @model_validator(mode="after")
    def validate_bounds(self) -> "RecurrenceRule":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class OverrideOf(BaseModel):
    """Link from an override to the record and date it replaces or cancels"""

    model_config = ConfigDict(frozen=True)

    template_id: str
    occurrence_date: date


class ScheduleRecord(BaseModel):
    """A schedule record as the engine sees it"""

    id: str
    contract_id: str
    contract_name: str = ""
    address: Optional[str] = None
    weekday: Optional[str] = None
    time: str = DEFAULT_VISIT_TIME
    notes: Optional[str] = None
    active: bool = True
    recurrence_rule: Optional[RecurrenceRule] = None
    override_of: Optional[OverrideOf] = None

    @field_validator("weekday")
    @classmethod
    def validate_weekday_name(cls, v: Optional[str]) -> Optional[str]:
        return validate_weekday(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_of_day(v)

    @model_validator(mode="after")
    def validate_role(self) -> "ScheduleRecord":
        if self.recurrence_rule is not None:
            if not self.active:
                raise ValueError("An inactive record cannot carry a recurrence rule")
            if self.override_of is not None:
                raise ValueError("An override cannot carry a recurrence rule")
        return self

    @property
    def is_template(self) -> bool:
        return self.recurrence_rule is not None


class Occurrence(BaseModel):
    """One (date, record) pair produced by resolution. Never persisted."""

    day: date
    record: ScheduleRecord

    @computed_field
    @property
    def occurrence_id(self) -> str:
        return f"{self.record.id}-{self.day.isoformat()}"

    @computed_field
    @property
    def origin_id(self) -> str:
        return self.record.id

    @computed_field
    @property
    def recurring(self) -> bool:
        return self.record.is_template

    @computed_field
    @property
    def label(self) -> str:
        return self.record.notes or DEFAULT_VISIT_LABEL


class ScheduleRecordCreate(BaseModel):
    """Schema for creating a visit, a recurring series or an override"""

    contract_id: str
    contract_name: str = ""
    address: Optional[str] = None
    weekday: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    active: bool = True
    recurrence_rule: Optional[RecurrenceRule] = None
    override_of: Optional[OverrideOf] = None

    @field_validator("weekday")
    @classmethod
    def validate_weekday_name(cls, v: Optional[str]) -> Optional[str]:
        return validate_weekday(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_of_day(v)


class ScheduleRecordUpdate(BaseModel):
    """Schema for updating a record in place. Only fields that are sent change."""

    contract_name: Optional[str] = None
    address: Optional[str] = None
    weekday: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    active: Optional[bool] = None
    recurrence_rule: Optional[RecurrenceRule] = None

    @field_validator("weekday")
    @classmethod
    def validate_weekday_name(cls, v: Optional[str]) -> Optional[str]:
        return validate_weekday(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_of_day(v)


class OccurrenceEdit(BaseModel):
    """New values for one occurrence, for a series tail, or for a whole series"""

    contract_name: Optional[str] = None
    address: Optional[str] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    interval: Optional[int] = None  # ignored for single-date edits

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return validate_time_of_day(v)

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("interval must be at least 1 day")
        return v


class EditScope(str, Enum):
    SINGLE = "single"
    FUTURE = "future"
    ALL = "all"


class MutationAction(str, Enum):
    OVERRIDE_CREATED = "override_created"
    OVERRIDE_UPDATED = "override_updated"
    SERIES_TRUNCATED = "series_truncated"
    SERIES_SPLIT = "series_split"
    SERIES_UPDATED = "series_updated"
    SERIES_DELETED = "series_deleted"
    RECORD_DELETED = "record_deleted"
    NOOP = "noop"


class MutationResult(BaseModel):
    """Outcome of a series mutation"""

    action: MutationAction
    record_id: Optional[str] = None
    message: str


class PurgeResult(BaseModel):
    deleted_count: int
    message: str

"""Schedule router - FastAPI endpoints for visit scheduling"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    EditScope,
    MutationResult,
    Occurrence,
    OccurrenceEdit,
    PurgeResult,
    ScheduleRecord,
    ScheduleRecordCreate,
    ScheduleRecordUpdate,
)
from .service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


# ============================================================================
# OCCURRENCE QUERIES
# ============================================================================


@router.get("/day/{day}", response_model=list[ScheduleRecord])
async def get_day(
    day: date,
    contract_id: Optional[str] = Query(None, description="Only this contract's visits"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Effective visits on one date (YYYY-MM-DD)"""
    return service.resolve_day(day, contract_id)


@router.get("/calendar", response_model=dict[date, list[ScheduleRecord]])
async def get_calendar(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    contract_id: Optional[str] = Query(None, description="Only this contract's visits"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Effective visits for each day of a month"""
    return service.calendar_month(year, month, contract_id)


@router.get("/upcoming", response_model=list[Occurrence])
async def get_upcoming(
    from_date: Optional[date] = Query(None, description="First day, defaults to today"),
    until: Optional[date] = Query(None, description="Last day, defaults to December 31"),
    contract_id: Optional[str] = Query(None, description="Only this contract's visits"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Upcoming visits, sorted by date and time"""
    return service.upcoming(from_date, until, contract_id)


# ============================================================================
# MAINTENANCE
# ============================================================================


@router.post("/maintenance/purge-cancelled", response_model=PurgeResult)
async def purge_cancelled(
    contract_id: Optional[str] = Query(None, description="Only purge this contract's records"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Remove cancelled and orphaned override records"""
    return service.purge_cancelled(contract_id)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[ScheduleRecord])
async def get_records(
    contract_id: Optional[str] = Query(None, description="Filter records by contract ID"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Get all schedule records"""
    return service.get_records(contract_id)


@router.post("", response_model=ScheduleRecord, status_code=201)
async def create_record(
    data: ScheduleRecordCreate,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create a visit, a recurring series or a date override"""
    return service.create_record(data)


@router.get("/{record_id}", response_model=ScheduleRecord)
async def get_record(
    record_id: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Get a specific schedule record"""
    return service.get_record(record_id)


@router.patch("/{record_id}", response_model=ScheduleRecord)
async def update_record(
    record_id: str,
    data: ScheduleRecordUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Update a schedule record in place"""
    return service.update_record(record_id, data)


@router.delete("/{record_id}")
async def delete_record(
    record_id: str,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Delete a schedule record"""
    return service.delete_record(record_id)


# ============================================================================
# SERIES EDITS
# ============================================================================


@router.post("/{record_id}/occurrences/{day}/cancel", response_model=MutationResult)
async def cancel_occurrence(
    record_id: str,
    day: date,
    scope: EditScope = Query(EditScope.SINGLE),
    template_id: Optional[str] = Query(None, description="Originating recurring record"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Cancel only this date, this and all future dates, or the entire series"""
    result = service.cancel_occurrence(record_id, day, scope, template_id)
    logger.info(f"✅ Cancel {record_id} on {day.isoformat()}: {result.action.value}")
    return result


@router.patch("/{record_id}/occurrences/{day}", response_model=MutationResult)
async def edit_occurrence(
    record_id: str,
    day: date,
    changes: OccurrenceEdit,
    scope: EditScope = Query(EditScope.SINGLE),
    template_id: Optional[str] = Query(None, description="Originating recurring record"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Edit only this date, this and all future dates, or the entire series"""
    result = service.edit_occurrence(record_id, day, changes, scope, template_id)
    logger.info(f"✅ Edit {record_id} on {day.isoformat()}: {result.action.value}")
    return result

from datetime import date, timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from facility_app.domain.scheduling.repository import ScheduleRepository
from facility_app.domain.scheduling.schemas import (
    EditScope,
    MutationAction,
    OccurrenceEdit,
    OverrideOf,
    RecurrenceRule,
    ScheduleRecordCreate,
    ScheduleRecordUpdate,
)

START = date(2025, 1, 6)


def create_weekly(service, contract_id="C", **kwargs):
    return service.create_record(
        ScheduleRecordCreate(
            contract_id=contract_id,
            contract_name="Riverside Tower",
            address="10 River Rd",
            time="08:00",
            recurrence_rule=RecurrenceRule(interval=7, start_date=START),
            **kwargs,
        )
    )


def ids(records):
    return [record.id for record in records]


def test_end_to_end_series_lifecycle(service):
    template = create_weekly(service)

    assert ids(service.resolve_day(date(2025, 1, 13))) == [template.id]

    result = service.cancel_occurrence(template.id, date(2025, 1, 13))
    assert result.action is MutationAction.OVERRIDE_CREATED
    assert service.resolve_day(date(2025, 1, 13)) == []
    assert ids(service.resolve_day(date(2025, 1, 20))) == [template.id]

    result = service.cancel_occurrence(template.id, date(2025, 1, 20), EditScope.FUTURE)
    assert result.action is MutationAction.SERIES_TRUNCATED
    assert service.resolve_day(date(2025, 1, 20)) == []
    assert ids(service.resolve_day(date(2025, 1, 6))) == [template.id]

    result = service.cancel_occurrence(template.id, date(2025, 1, 6), EditScope.ALL)
    assert result.action is MutationAction.SERIES_DELETED
    for offset in range(0, 70, 7):
        assert service.resolve_day(START + timedelta(days=offset)) == []


def test_single_cancellation_leaves_template_untouched(service):
    template = create_weekly(service)
    service.cancel_occurrence(template.id, date(2025, 1, 13))

    stored = service.get_record(template.id)
    assert stored.recurrence_rule == template.recurrence_rule
    assert stored.active is True

    overrides = [r for r in service.get_records() if r.id != template.id]
    assert len(overrides) == 1
    override = overrides[0]
    assert override.active is False
    assert override.recurrence_rule is None
    assert override.override_of == OverrideOf(template_id=template.id, occurrence_date=date(2025, 1, 13))
    assert override.notes.endswith("[CANCELLED 2025-01-13]")
    assert override.contract_id == "C"
    assert override.address == "10 River Rd"
    assert override.weekday == "monday"


def test_truncation_only_affects_dates_from_the_cut(service):
    template = create_weekly(service)
    cut = date(2025, 3, 3)
    days = [START + timedelta(days=offset) for offset in range(0, 120)]
    before = {day: ids(service.resolve_day(day)) for day in days}

    service.cancel_occurrence(template.id, cut, EditScope.FUTURE)

    assert service.get_record(template.id).recurrence_rule.end_date == date(2025, 3, 2)
    for day in days:
        after = ids(service.resolve_day(day))
        if day >= cut:
            assert after == []
        else:
            assert after == before[day]


def test_truncating_at_the_first_date_deletes_the_series(service):
    template = create_weekly(service)
    result = service.cancel_occurrence(template.id, START, EditScope.FUTURE)
    assert result.action is MutationAction.SERIES_DELETED
    assert service.get_records() == []


def test_truncating_after_the_series_ended_is_a_noop(service):
    template = service.create_record(
        ScheduleRecordCreate(
            contract_id="C",
            recurrence_rule=RecurrenceRule(interval=7, start_date=START, end_date=date(2025, 2, 3)),
        )
    )
    result = service.cancel_occurrence(template.id, date(2025, 6, 2), EditScope.FUTURE)
    assert result.action is MutationAction.NOOP
    assert service.get_record(template.id).recurrence_rule.end_date == date(2025, 2, 3)


def test_second_override_for_the_same_date_is_merged(service):
    template = create_weekly(service)
    day = date(2025, 1, 13)

    edited = service.edit_occurrence(template.id, day, OccurrenceEdit(time="15:30", notes="Roof access"))
    assert edited.action is MutationAction.OVERRIDE_CREATED
    (resolved,) = service.resolve_day(day)
    assert resolved.id == edited.record_id
    assert resolved.time == "15:30"
    assert resolved.notes == "Roof access [2025-01-13]"

    cancelled = service.cancel_occurrence(template.id, day)
    assert cancelled.action is MutationAction.OVERRIDE_UPDATED
    assert cancelled.record_id == edited.record_id
    assert len(service.get_records()) == 2
    assert service.resolve_day(day) == []


def test_cancelling_an_override_occurrence_updates_it(service):
    template = create_weekly(service)
    day = date(2025, 1, 13)
    edited = service.edit_occurrence(template.id, day, OccurrenceEdit(time="15:30"))

    result = service.cancel_occurrence(edited.record_id, day, template_id=template.id)
    assert result.action is MutationAction.OVERRIDE_UPDATED
    override = service.get_record(edited.record_id)
    assert override.active is False
    assert override.notes.endswith("[CANCELLED 2025-01-13]")


def test_re_editing_an_override_keeps_its_date(service):
    template = create_weekly(service)
    day = date(2025, 1, 13)
    edited = service.edit_occurrence(template.id, day, OccurrenceEdit(time="15:30"))

    result = service.edit_occurrence(edited.record_id, day, OccurrenceEdit(time="16:00", notes="Later"))
    assert result.action is MutationAction.OVERRIDE_UPDATED
    override = service.get_record(edited.record_id)
    assert override.time == "16:00"
    assert override.notes == "Later [2025-01-13]"
    assert override.override_of.occurrence_date == day


def test_missing_template_falls_back_to_deleting_the_occurrence(service):
    visit = service.create_record(ScheduleRecordCreate(contract_id="C", weekday="monday"))

    result = service.cancel_occurrence(visit.id, START, template_id="gone")
    assert result.action is MutationAction.RECORD_DELETED
    assert service.get_records() == []

    result = service.cancel_occurrence("gone", START)
    assert result.action is MutationAction.NOOP


def test_future_scope_without_rule_deletes_the_record(service):
    visit = service.create_record(ScheduleRecordCreate(contract_id="C", weekday="monday"))
    result = service.cancel_occurrence(visit.id, START, EditScope.FUTURE)
    assert result.action is MutationAction.RECORD_DELETED


def test_single_cancellation_of_a_standalone_visit(service):
    visit = service.create_record(ScheduleRecordCreate(contract_id="C", weekday="monday"))
    result = service.cancel_occurrence(visit.id, date(2025, 1, 13))
    assert result.action is MutationAction.OVERRIDE_CREATED
    assert service.resolve_day(date(2025, 1, 13)) == []
    assert ids(service.resolve_day(date(2025, 1, 20))) == [visit.id]


def test_editing_this_and_future_splits_the_series(service):
    template = create_weekly(service)
    cut = date(2025, 2, 3)

    result = service.edit_occurrence(
        template.id, cut, OccurrenceEdit(time="13:00", interval=14), EditScope.FUTURE
    )
    assert result.action is MutationAction.SERIES_SPLIT

    old = service.get_record(template.id)
    tail = service.get_record(result.record_id)
    assert old.recurrence_rule.end_date == date(2025, 2, 2)
    assert tail.recurrence_rule.start_date == cut
    assert tail.recurrence_rule.interval == 14
    assert tail.time == "13:00"
    assert tail.contract_name == "Riverside Tower"

    assert ids(service.resolve_day(date(2025, 1, 27))) == [template.id]
    assert ids(service.resolve_day(cut)) == [tail.id]
    assert service.resolve_day(date(2025, 2, 10)) == []
    assert ids(service.resolve_day(date(2025, 2, 17))) == [tail.id]


def test_editing_future_from_the_first_date_updates_the_series(service):
    template = create_weekly(service)
    result = service.edit_occurrence(template.id, START, OccurrenceEdit(time="11:00"), EditScope.FUTURE)
    assert result.action is MutationAction.SERIES_UPDATED
    assert len(service.get_records()) == 1
    assert service.get_record(template.id).time == "11:00"


def test_editing_the_whole_series_in_place(service):
    template = create_weekly(service)
    result = service.edit_occurrence(
        template.id, date(2025, 3, 3), OccurrenceEdit(notes="Quarterly check", interval=14), EditScope.ALL
    )
    assert result.action is MutationAction.SERIES_UPDATED

    stored = service.get_record(template.id)
    assert stored.notes == "Quarterly check"
    assert stored.recurrence_rule.interval == 14
    assert stored.recurrence_rule.start_date == START


def test_deleting_a_series_keeps_its_overrides_until_purged(service):
    template = create_weekly(service)
    service.cancel_occurrence(template.id, date(2025, 1, 13))
    service.edit_occurrence(template.id, date(2025, 1, 20), OccurrenceEdit(time="17:00"))
    keep = service.create_record(ScheduleRecordCreate(contract_id="D", weekday="friday"))

    service.cancel_occurrence(template.id, START, EditScope.ALL)
    assert len(service.get_records()) == 3

    purged = service.purge_cancelled()
    assert purged.deleted_count == 2
    assert ids(service.get_records()) == [keep.id]

    assert service.purge_cancelled().deleted_count == 0


def test_purge_can_be_limited_to_one_contract(service):
    a = create_weekly(service, contract_id="A")
    b = create_weekly(service, contract_id="B")
    service.cancel_occurrence(a.id, date(2025, 1, 13))
    service.cancel_occurrence(b.id, date(2025, 1, 13))

    assert service.purge_cancelled("A").deleted_count == 1
    assert service.resolve_day(date(2025, 1, 13)) == [service.get_record(a.id)]


def test_duplicate_override_is_rejected_on_create(service):
    template = create_weekly(service)
    payload = ScheduleRecordCreate(
        contract_id="C",
        active=False,
        override_of=OverrideOf(template_id=template.id, occurrence_date=date(2025, 1, 13)),
    )
    service.create_record(payload)

    with pytest.raises(HTTPException) as exc_info:
        service.create_record(payload)
    assert exc_info.value.status_code == 409


def test_inactive_template_is_rejected(service):
    with pytest.raises(HTTPException) as exc_info:
        create_weekly(service, active=False)
    assert exc_info.value.status_code == 422


def test_update_record_changes_only_sent_fields(service):
    template = create_weekly(service)
    updated = service.update_record(template.id, ScheduleRecordUpdate(time="9:15"))
    assert updated.time == "09:15"
    assert updated.contract_name == "Riverside Tower"
    assert updated.recurrence_rule == template.recurrence_rule

    standalone = service.update_record(template.id, ScheduleRecordUpdate(recurrence_rule=None, weekday="monday"))
    assert standalone.recurrence_rule is None


def test_free_text_is_escaped(service):
    record = service.create_record(
        ScheduleRecordCreate(contract_id="C", weekday="monday", notes="<script>x</script>")
    )
    assert record.notes == "&lt;script&gt;x&lt;/script&gt;"


def test_unknown_record_is_not_found(service):
    with pytest.raises(HTTPException) as exc_info:
        service.get_record("missing")
    assert exc_info.value.status_code == 404


def test_persistence_failure_is_reported_and_rolled_back(service, monkeypatch):
    template = create_weekly(service)

    def boom(db, **record_data):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(ScheduleRepository, "create_record", staticmethod(boom))

    with pytest.raises(HTTPException) as exc_info:
        service.cancel_occurrence(template.id, date(2025, 1, 13))
    assert exc_info.value.status_code == 500
    assert ids(service.get_records()) == [template.id]


def test_upcoming_and_calendar_views(service):
    template = create_weekly(service)
    service.cancel_occurrence(template.id, date(2025, 12, 15))

    occurrences = service.upcoming(date(2025, 12, 1))
    assert [o.day for o in occurrences] == [
        date(2025, 12, 1),
        date(2025, 12, 8),
        date(2025, 12, 22),
        date(2025, 12, 29),
    ]

    month = service.calendar_month(2025, 2)
    assert len(month) == 28
    assert [day for day, records in month.items() if records] == [
        date(2025, 2, 3),
        date(2025, 2, 10),
        date(2025, 2, 17),
        date(2025, 2, 24),
    ]

    with pytest.raises(HTTPException) as exc_info:
        service.upcoming(date(2025, 1, 1), date(2027, 1, 1))
    assert exc_info.value.status_code == 400


def test_editing_a_date_without_a_visit_changes_nothing(service):
    template = create_weekly(service)
    tuesday_visit = service.create_record(
        ScheduleRecordCreate(contract_id="D", weekday="tuesday", time="11:00")
    )
    tuesday = date(2025, 1, 14)

    result = service.edit_occurrence(template.id, tuesday, OccurrenceEdit(time="10:00"))
    assert result.action is MutationAction.NOOP
    assert ids(service.resolve_day(tuesday)) == [tuesday_visit.id]
    assert len(service.get_records()) == 2


def test_cancelling_a_date_without_a_visit_changes_nothing(service):
    template = create_weekly(service)

    result = service.cancel_occurrence(template.id, date(2025, 1, 14))
    assert result.action is MutationAction.NOOP
    assert ids(service.get_records()) == [template.id]

    visit = service.create_record(ScheduleRecordCreate(contract_id="D", weekday="friday"))
    assert service.cancel_occurrence(visit.id, date(2025, 1, 13)).action is MutationAction.NOOP
    assert len(service.get_records()) == 2


def test_editing_future_from_an_off_pattern_date_splits_at_the_next_visit(service):
    template = create_weekly(service)
    wednesday = date(2025, 2, 5)

    result = service.edit_occurrence(
        template.id, wednesday, OccurrenceEdit(time="13:00"), EditScope.FUTURE
    )
    assert result.action is MutationAction.SERIES_SPLIT

    tail = service.get_record(result.record_id)
    assert tail.recurrence_rule.start_date == date(2025, 2, 10)
    assert service.get_record(template.id).recurrence_rule.end_date == date(2025, 2, 9)

    assert ids(service.resolve_day(date(2025, 2, 3))) == [template.id]
    assert service.resolve_day(wednesday) == []
    assert service.resolve_day(date(2025, 2, 12)) == []
    assert ids(service.resolve_day(date(2025, 2, 10))) == [tail.id]
    assert ids(service.resolve_day(date(2025, 2, 17))) == [tail.id]


def test_editing_future_from_before_the_start_keeps_the_start(service):
    template = create_weekly(service)

    result = service.edit_occurrence(
        template.id, date(2024, 12, 18), OccurrenceEdit(time="12:00"), EditScope.FUTURE
    )
    assert result.action is MutationAction.SERIES_UPDATED

    stored = service.get_record(template.id)
    assert stored.recurrence_rule.start_date == START
    assert stored.time == "12:00"
    assert service.resolve_day(date(2024, 12, 30)) == []


def test_editing_future_after_the_series_ended_is_a_noop(service):
    template = service.create_record(
        ScheduleRecordCreate(
            contract_id="C",
            recurrence_rule=RecurrenceRule(interval=7, start_date=START, end_date=date(2025, 2, 3)),
        )
    )
    result = service.edit_occurrence(
        template.id, date(2025, 2, 4), OccurrenceEdit(time="12:00"), EditScope.FUTURE
    )
    assert result.action is MutationAction.NOOP
    assert len(service.get_records()) == 1


def test_views_can_be_limited_to_one_contract(service):
    a = create_weekly(service, contract_id="A")
    b = create_weekly(service, contract_id="B")
    monday = date(2025, 1, 13)

    assert ids(service.resolve_day(monday)) == [a.id, b.id]
    assert ids(service.resolve_day(monday, "B")) == [b.id]

    month = service.calendar_month(2025, 1, "A")
    assert all(ids(records) in ([], [a.id]) for records in month.values())
    assert month[monday] == [a]

    occurrences = service.upcoming(date(2025, 12, 1), contract_id="B")
    assert {o.record.id for o in occurrences} == {b.id}
    assert len(occurrences) == 5


def test_contract_filter_keeps_replacement_precedence(service):
    a = create_weekly(service, contract_id="A")
    create_weekly(service, contract_id="B")
    monday = date(2025, 1, 13)

    edited = service.edit_occurrence(a.id, monday, OccurrenceEdit(time="16:00"))

    assert ids(service.resolve_day(monday)) == [edited.record_id]
    assert service.resolve_day(monday, "B") == []


def test_update_cannot_create_a_second_override_for_a_date(service):
    template = create_weekly(service)
    service.cancel_occurrence(template.id, date(2025, 1, 13))
    visit = service.create_record(ScheduleRecordCreate(contract_id="C", weekday="monday"))

    with pytest.raises(HTTPException) as exc_info:
        service.update_record(visit.id, ScheduleRecordUpdate(notes="Moved [2025-01-13]"))
    assert exc_info.value.status_code == 409
    assert service.get_record(visit.id).notes is None

    updated = service.update_record(visit.id, ScheduleRecordUpdate(notes="Moved [2025-01-20]"))
    assert updated.notes == "Moved [2025-01-20]"


def test_records_come_back_in_creation_order(service):
    created = [
        service.create_record(ScheduleRecordCreate(contract_id=f"C{n}", weekday="monday"))
        for n in range(6)
    ]
    assert ids(service.get_records()) == ids(created)
    assert ids(service.resolve_day(START)) == ids(created)

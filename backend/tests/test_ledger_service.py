# Overview: Pytest coverage for ledger freezing, idempotency, corrections and the repair pass.

"""
Ledger Freezer Tests

Punches are recorded through the punch service with explicit receipt times
(one minute after the instant) so the duplicate guard never interferes.
"""

from datetime import date, timedelta

import pytest

from conftest import local
from ontrack.models import AttendancePunch, LedgerEntry, ShiftDefinition
from ontrack.models.ledger import LEDGER_STATUS_ADJUSTED, LEDGER_STATUS_FROZEN
from ontrack.models.shifts import SLOT_AM, SLOT_DEFAULT, SLOT_OT
from ontrack.services import ledger_service, punch_service, shift_config_service
from ontrack.time_utils import to_epoch_ms


DAY = date(2026, 3, 2)


def record(student, kind, when, **kwargs):
    return punch_service.record_punch(
        subject=student.idnumber,
        kind=kind,
        instant_ms=to_epoch_ms(when),
        received_at=when + timedelta(minutes=1),
        **kwargs,
    )


def only_entry(db_session):
    entries = db_session.query(LedgerEntry).all()
    assert len(entries) == 1
    return entries[0]


class TestFreeze:
    def test_scenario_a_clamped_hours_and_official_times(self, db_session, student):
        record(student, "in", local(DAY, "07:45"))
        result = record(student, "out", local(DAY, "12:30"))

        assert result.accepted
        assert result.computed_hours == 4.0

        entry = only_entry(db_session)
        assert entry.worked_minutes == 240
        assert entry.official_time_in == local(DAY, "08:00")
        assert entry.official_time_out == local(DAY, "12:00")
        assert entry.status == LEDGER_STATUS_FROZEN
        assert db_session.get(ShiftDefinition, entry.shift_id).slot == SLOT_AM

    def test_freeze_is_idempotent(self, db_session, student):
        record(student, "in", local(DAY, "08:05"))
        result = record(student, "out", local(DAY, "11:20"))
        first = only_entry(db_session).to_dict()

        out = db_session.get(AttendancePunch, result.punch_id)
        again = ledger_service.freeze_out_punch(out)

        second = only_entry(db_session).to_dict()
        assert again.id == first["id"]
        for key in ("hours", "worked_minutes", "official_time_in", "official_time_out", "shift_id"):
            assert second[key] == first[key]

    def test_latest_out_overwrites_same_key(self, db_session, student):
        record(student, "in", local(DAY, "08:00"))
        record(student, "out", local(DAY, "11:00"))
        late = record(student, "out", local(DAY, "11:45"))

        entry = only_entry(db_session)
        assert entry.out_punch_id == late.punch_id
        assert entry.worked_minutes == 225

    def test_out_without_in_freezes_nothing(self, db_session, student):
        result = record(student, "out", local(DAY, "12:00"))
        assert result.accepted
        assert result.computed_hours is None
        assert db_session.query(LedgerEntry).count() == 0

    def test_schedule_edit_after_freeze_does_not_change_history(self, db_session, student, supervisor):
        record(student, "in", local(DAY, "08:00"))
        record(student, "out", local(DAY, "12:00"))

        shift_config_service.set_shift_schedule(
            supervisor_id=supervisor.id, am_in="10:00", am_out="12:00", pm_in="13:00", pm_out="17:00",
        )

        entry = only_entry(db_session)
        assert entry.hours == 4.0
        assert entry.official_time_in == local(DAY, "08:00")


class TestOvertime:
    def test_authorized_overtime_is_raw_elapsed(self, db_session, student):
        shift_config_service.authorize_overtime(
            student_id=student.id, day=DAY, start_at=local(DAY, "18:00"), end_at=local(DAY, "22:00"),
        )
        record(student, "in", local(DAY, "18:00"), authorized_overtime=True)
        result = record(student, "out", local(DAY, "23:00"))

        assert result.computed_hours == 5.0
        entry = only_entry(db_session)
        assert entry.official_time_in is None
        assert entry.official_time_out is None
        assert db_session.get(ShiftDefinition, entry.shift_id).slot == SLOT_OT

    def test_scenario_c_overnight_out_accounts_to_session_date(self, db_session, student):
        shift_config_service.set_shift_schedule(
            supervisor_id=None, am_in="08:00", am_out="12:00", pm_in="13:00", pm_out="17:00",
            ot_in="22:00", ot_out="02:00",
        )
        schedule = shift_config_service.schedule_for_student(student, DAY)
        assert schedule.ot_end == local(DAY + timedelta(days=1), "02:00")

        record(student, "in", local(DAY, "21:45"), authorized_overtime=True)
        result = record(student, "out", local(DAY, "25:30"))

        out = db_session.get(AttendancePunch, result.punch_id)
        assert out.attendance_date == DAY
        assert result.computed_hours == 3.75

        entry = only_entry(db_session)
        assert entry.attendance_date == DAY
        assert entry.worked_minutes == 225


class TestRawFallback:
    def test_unmatched_punches_use_truncated_raw_time_on_default_shift(self, db_session, student, supervisor):
        record(student, "in", local(DAY, "06:00", seconds=50))
        result = record(student, "out", local(DAY, "07:00", seconds=10))

        assert result.computed_hours == 1.0
        entry = only_entry(db_session)
        shift = db_session.get(ShiftDefinition, entry.shift_id)
        assert shift.slot == SLOT_DEFAULT
        assert shift.supervisor_id == supervisor.id
        assert shift.official_start == "09:00"
        assert entry.official_time_in is None


class TestCorrections:
    def test_edit_refreezes_with_adjusted_status(self, db_session, student):
        record(student, "in", local(DAY, "08:00"))
        out = record(student, "out", local(DAY, "11:00"))
        assert only_entry(db_session).hours == 3.0

        punch_service.edit_punch(out.punch_id, instant_ms=to_epoch_ms(local(DAY, "12:00")), edited_by="ADMIN-1")

        entry = only_entry(db_session)
        assert entry.hours == 4.0
        assert entry.status == LEDGER_STATUS_ADJUSTED
        assert entry.out_punch_id == out.punch_id

    def test_moving_an_in_to_another_window_moves_the_key(self, db_session, student):
        punch_in = record(student, "in", local(DAY, "08:00"))
        record(student, "out", local(DAY, "11:00"))

        punch_service.edit_punch(punch_in.punch_id, instant_ms=to_epoch_ms(local(DAY, "10:00")))
        entry = only_entry(db_session)
        assert entry.hours == 1.0
        assert entry.in_punch_id == punch_in.punch_id

    def test_rejecting_the_latest_out_falls_back_to_earlier_out(self, db_session, student):
        record(student, "in", local(DAY, "08:00"))
        early = record(student, "out", local(DAY, "11:00"))
        late = record(student, "out", local(DAY, "11:45"))

        punch_service.set_punch_status(late.punch_id, "rejected", validated_by="SUP-001")

        entry = only_entry(db_session)
        assert entry.out_punch_id == early.punch_id
        assert entry.hours == 3.0


class TestFailureAndRepair:
    def test_freeze_failure_is_swallowed_and_rebuild_repairs(self, db_session, student, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        record(student, "in", local(DAY, "08:00"))
        with monkeypatch.context() as m:
            m.setattr(ledger_service, "compute_frozen_hours", boom)
            result = record(student, "out", local(DAY, "12:00"))

        assert result.accepted
        assert result.computed_hours is None
        assert db_session.get(AttendancePunch, result.punch_id) is not None
        assert db_session.query(LedgerEntry).count() == 0

        summary = ledger_service.rebuild_ledger(student_id=student.id)
        assert summary["frozen"] == 1
        assert only_entry(db_session).hours == 4.0

        # second pass finds nothing missing
        summary = ledger_service.rebuild_ledger(student_id=student.id)
        assert summary["frozen"] == 0
        assert summary["skipped"] == 1

    def test_failed_refreeze_keeps_the_previous_row(self, db_session, student, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        record(student, "in", local(DAY, "08:00"))
        out = record(student, "out", local(DAY, "11:00"))

        with monkeypatch.context() as m:
            m.setattr(ledger_service, "compute_frozen_hours", boom)
            punch = punch_service.edit_punch(out.punch_id, instant_ms=to_epoch_ms(local(DAY, "12:00")))

        assert punch.occurred_at == local(DAY, "12:00")
        entry = only_entry(db_session)
        assert entry.hours == 3.0
        assert entry.out_punch_id == out.punch_id
        assert entry.status == LEDGER_STATUS_FROZEN

        ledger_service.rebuild_ledger(student_id=student.id, only_missing=False)
        assert only_entry(db_session).hours == 4.0

    def test_rebuild_freezes_only_the_latest_out_per_session(self, db_session, student):
        record(student, "in", local(DAY, "08:00"))
        record(student, "out", local(DAY, "11:00"))
        late = record(student, "out", local(DAY, "11:30"))
        db_session.query(LedgerEntry).delete()
        db_session.commit()

        summary = ledger_service.rebuild_ledger(student_id=student.id, since=DAY, until=DAY)
        assert summary["sessions"] == 1
        assert only_entry(db_session).out_punch_id == late.punch_id

    def test_list_entries_by_range(self, db_session, student):
        for offset in range(3):
            day = DAY + timedelta(days=offset)
            record(student, "in", local(day, "08:00"))
            record(student, "out", local(day, "12:00"))

        entries = ledger_service.list_ledger_entries(
            student_id=student.id, start=DAY + timedelta(days=1), end=DAY + timedelta(days=2),
        )
        assert [e.attendance_date for e in entries] == [DAY + timedelta(days=1), DAY + timedelta(days=2)]


@pytest.mark.parametrize("in_time,out_time,minutes", [
    ("07:31", "12:00", 240),
    ("08:15", "11:45", 210),
    ("12:40", "17:20", 240),
])
def test_frozen_minutes_match_clamp(db_session, student, in_time, out_time, minutes):
    record(student, "in", local(DAY, in_time))
    record(student, "out", local(DAY, out_time))
    assert only_entry(db_session).worked_minutes == minutes

# Overview: Pytest coverage for read-side day and range summaries.

from datetime import date, timedelta

import pytest

from conftest import local
from ontrack.services import punch_service, shift_config_service, summary_service
from ontrack.services.summary_service import SOURCE_LEDGER, SOURCE_LIVE
from ontrack.time_utils import to_epoch_ms


DAY = date(2026, 3, 2)
HOUR_MS = 3600 * 1000
LATER = local(DAY + timedelta(days=7), "09:00")


def record(student, kind, when, **kwargs):
    return punch_service.record_punch(
        subject=student.idnumber,
        kind=kind,
        instant_ms=to_epoch_ms(when),
        received_at=when + timedelta(minutes=1),
        **kwargs,
    )


def test_frozen_entry_wins_over_live_recomputation(db_session, student, supervisor):
    record(student, "in", local(DAY, "08:00"))
    record(student, "out", local(DAY, "12:00"))

    shift_config_service.set_shift_schedule(
        supervisor_id=supervisor.id, am_in="08:30", am_out="12:00", pm_in="13:00", pm_out="17:00",
    )

    summary = summary_service.summarize_day(student, DAY, now=LATER)
    session = summary["sessions"][0]
    assert session["slot"] == "am"
    assert session["live_ms"] == int(3.5 * HOUR_MS)
    assert session["frozen_hours"] == 4.0
    assert session["source"] == SOURCE_LEDGER
    assert summary["total_ms"] == 4 * HOUR_MS
    assert summary["total"] == "4h 0m"


def test_past_open_session_uses_virtual_out(db_session, student):
    record(student, "in", local(DAY, "08:05"))

    summary = summary_service.summarize_day(student, DAY, now=LATER)
    session = summary["sessions"][0]
    assert session["virtual_out"]
    assert session["validated_by"] == "SYSTEM_AUTO_CLOSE"
    assert session["out_ts"] == to_epoch_ms(local(DAY, "12:00"))
    assert session["source"] == SOURCE_LIVE
    assert summary["total"] == "3h 55m"
    assert summary["active_session"] is None


def test_today_open_session_is_active(db_session, student):
    record(student, "in", local(DAY, "08:05"))

    summary = summary_service.summarize_day(student, DAY, now=local(DAY, "10:00"))
    assert summary["sessions"][0]["is_open"]
    assert summary["total_ms"] == 0
    assert summary["active_session"] == {"slot": "am", "started_at": to_epoch_ms(local(DAY, "08:05"))}


def test_validated_time_needs_both_punches_approved(db_session, student):
    punch_in = record(student, "in", local(DAY, "08:00"))
    punch_out = record(student, "out", local(DAY, "12:00"))

    punch_service.set_punch_status(punch_in.punch_id, "validated", validated_by="SUP-001")
    summary = summary_service.summarize_day(student, DAY, now=LATER)
    assert summary["validated_ms"] == 0

    punch_service.set_punch_status(punch_out.punch_id, "validated", validated_by="SUP-001")
    summary = summary_service.summarize_day(student, DAY, now=LATER)
    assert summary["validated_ms"] == 4 * HOUR_MS


def test_raw_fallback_rows_are_counted(db_session, student):
    record(student, "in", local(DAY, "06:00"))
    record(student, "out", local(DAY, "07:00"))

    summary = summary_service.summarize_day(student, DAY, now=LATER)
    assert summary["sessions"] == []
    assert len(summary["unpaired_ledger_entries"]) == 1
    assert summary["total_ms"] == HOUR_MS


def test_out_closing_a_frozen_row_is_counted_once(db_session, student):
    record(student, "in", local(DAY, "08:00"))
    record(student, "in", local(DAY, "12:15"))  # unclassified
    out = record(student, "out", local(DAY, "12:20"))

    summary = summary_service.summarize_day(student, DAY, now=LATER)
    session = summary["sessions"][0]
    assert session["out_punch_id"] == out.punch_id
    assert session["source"] == SOURCE_LEDGER
    assert summary["unpaired_ledger_entries"] == []
    assert summary["total_ms"] == 5 * 60 * 1000


def test_range_totals_days(db_session, student):
    for offset in range(2):
        day = DAY + timedelta(days=offset)
        record(student, "in", local(day, "13:00"))
        record(student, "out", local(day, "17:00"))

    summary = summary_service.summarize_range(student, DAY, DAY + timedelta(days=2), now=LATER)
    assert [d["date"] for d in summary["days"]] == ["2026-03-02", "2026-03-03", "2026-03-04"]
    assert summary["total_ms"] == 8 * HOUR_MS
    assert summary["total"] == "8h 0m"


def test_range_must_be_ordered(db_session, student):
    with pytest.raises(ValueError):
        summary_service.summarize_range(student, DAY, DAY - timedelta(days=1))

# Overview: Pytest coverage for the schedule builder and shift classifier.

from datetime import date, timedelta

import pytest

from conftest import local
from ontrack.errors import InvalidConfig
from ontrack.services.schedule_service import (
    DEFAULT_SHIFT_CONFIG,
    OvertimeWindow,
    ShiftConfig,
    build_day_schedule,
    build_window,
    classify_punch,
    normalize_hhmm,
    out_belongs_to,
    parse_hhmm,
)


DAY = date(2026, 3, 2)


class TestParseHHMM:
    def test_accepts_common_forms(self):
        assert parse_hhmm("08:00") == 480
        assert parse_hhmm("8:05") == 485
        assert parse_hhmm("17:30:00") == 1050

    @pytest.mark.parametrize("value", ["", "noon", "25:00", "12:60", "12-30", None])
    def test_malformed_raises_invalid_config(self, value):
        with pytest.raises(InvalidConfig):
            parse_hhmm(value)

    def test_normalize_pads_and_blanks(self):
        assert normalize_hhmm("8:00") == "08:00"
        assert normalize_hhmm("  ") is None
        assert normalize_hhmm(None) is None


class TestBuildSchedule:
    def test_defaults_when_config_empty(self):
        schedule = build_day_schedule(DAY, ShiftConfig())
        assert schedule.am_in == local(DAY, "08:00")
        assert schedule.am_out == local(DAY, "12:00")
        assert schedule.pm_in == local(DAY, "13:00")
        assert schedule.pm_out == local(DAY, "17:00")
        assert schedule.ot_start == local(DAY, "17:00")
        assert schedule.ot_end == local(DAY, "18:00")

    def test_missing_fields_fall_back_independently(self):
        schedule = build_day_schedule(DAY, ShiftConfig(am_in="07:30", pm_out=""))
        assert schedule.am_in == local(DAY, "07:30")
        assert schedule.am_out == local(DAY, "12:00")
        assert schedule.pm_out == local(DAY, "17:00")

    def test_overnight_window_ends_next_day(self):
        schedule = build_day_schedule(DAY, ShiftConfig(ot_in="22:00", ot_out="06:00"))
        assert schedule.ot_start == local(DAY, "22:00")
        assert schedule.ot_end == local(DAY + timedelta(days=1), "06:00")
        assert schedule.ot_end - schedule.ot_start == timedelta(hours=8)

    def test_equal_start_and_end_rolls_a_full_day(self):
        start, end = build_window(DAY, "09:00", "09:00", 480)
        assert end - start == timedelta(days=1)

    def test_overtime_authorization_replaces_ot_window(self):
        window = OvertimeWindow(start=local(DAY, "18:00"), end=local(DAY, "23:00"))
        schedule = build_day_schedule(DAY, DEFAULT_SHIFT_CONFIG, overtime=window)
        assert schedule.window("ot") == (window.start, window.end)
        assert schedule.am_in == local(DAY, "08:00")

    def test_malformed_config_surfaces(self):
        with pytest.raises(InvalidConfig):
            build_day_schedule(DAY, ShiftConfig(am_in="8am"))

    def test_offset_anchors_civil_midnight(self):
        schedule = build_day_schedule(DAY, ShiftConfig(), utc_offset_minutes=0)
        assert schedule.am_in.hour == 8
        schedule = build_day_schedule(DAY, ShiftConfig(), utc_offset_minutes=480)
        assert schedule.am_in.hour == 0

    def test_to_dict_uses_epoch_ms(self):
        data = build_day_schedule(DAY, ShiftConfig()).to_dict()
        assert data["date"] == "2026-03-02"
        assert data["am_out"] - data["am_in"] == 4 * 3600 * 1000


class TestClassifier:
    def setup_method(self):
        self.schedule = build_day_schedule(DAY, ShiftConfig())

    def test_buffer_includes_29_minutes_early(self):
        assert classify_punch(local(DAY, "07:31"), self.schedule) == "am"

    def test_buffer_excludes_31_minutes_early(self):
        assert classify_punch(local(DAY, "07:29"), self.schedule) is None

    def test_scenario_b_too_early_is_none(self):
        assert classify_punch(local(DAY, "07:15"), self.schedule) is None

    def test_first_match_wins_in_literal_order(self):
        # 17:00 is both the pm end and the ot start
        assert classify_punch(local(DAY, "17:00"), self.schedule) == "pm"
        assert classify_punch(local(DAY, "17:05"), self.schedule) == "ot"

    def test_gap_between_windows_is_none(self):
        assert classify_punch(local(DAY, "12:15"), self.schedule) is None
        assert classify_punch(local(DAY, "19:00"), self.schedule) is None

    def test_overnight_after_midnight_is_ot(self):
        schedule = build_day_schedule(DAY, ShiftConfig(ot_in="22:00", ot_out="06:00"))
        assert classify_punch(local(DAY, "25:30"), schedule) == "ot"

    def test_late_out_belongs_to_morning(self):
        assert out_belongs_to(local(DAY, "12:30"), self.schedule, "am")
        assert not out_belongs_to(local(DAY, "13:00"), self.schedule, "am")
        assert out_belongs_to(local(DAY, "23:00"), self.schedule, "ot")

    def test_late_out_belongs_to_afternoon_when_overtime_starts_at_its_end(self):
        assert out_belongs_to(local(DAY, "17:20"), self.schedule, "pm")
        assert not out_belongs_to(local(DAY, "17:31"), self.schedule, "pm")

"""Tests for trailing-window stability analysis."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from calib.core.storage.models import StoredResponse
from calib.domains.calibration.domain_logic.calibration_models import DailyScore
from calib.domains.calibration.domain_logic.stability import (
    analyze,
    build_daily_window,
    compute_slope,
    detect_red_flags,
    replace_day,
)
from calib.domains.calibration.domain_logic.scoring import score
from helpers import SLEEP_5_6H, SLEEP_UNDER_5H, make_answers

_START = date(2026, 3, 1)


def _day(offset: int, **answers) -> DailyScore:
    return score(make_answers(**answers), date=(_START + timedelta(days=offset)).isoformat())


def _calm_days(offsets) -> list:
    return [_day(i, anxiety_1=1, sleep_quality=1) for i in offsets]


class TestSlope:
    def test_flat(self):
        assert compute_slope([2, 2, 2, 2]) == 0.0

    def test_rising(self):
        assert compute_slope([0, 1, 2, 3]) == pytest.approx(1.0)

    def test_falling(self):
        assert compute_slope([6, 4, 2]) == pytest.approx(-2.0)

    def test_too_few_points(self):
        assert compute_slope([]) == 0.0
        assert compute_slope([5]) == 0.0


class TestRedFlags:
    def test_high_anxiety(self):
        assert detect_red_flags([_day(0, anxiety_1=3)]) == ("GAD-2 ≥ 3",)

    def test_low_sleep_two_consecutive_days(self):
        window = [_day(0, sleep_duration=SLEEP_UNDER_5H), _day(1, sleep_duration=SLEEP_UNDER_5H)]
        assert "Sleep < 5h" in detect_red_flags(window)

    def test_low_sleep_non_consecutive_days(self):
        window = [_day(0, sleep_duration=SLEEP_UNDER_5H), _day(2, sleep_duration=SLEEP_UNDER_5H)]
        assert detect_red_flags(window) == ()

    def test_low_sleep_run_broken_by_normal_night(self):
        window = [
            _day(0, sleep_duration=SLEEP_UNDER_5H),
            _day(1, sleep_duration=SLEEP_5_6H),
            _day(2, sleep_duration=SLEEP_UNDER_5H),
        ]
        assert detect_red_flags(window) == ()

    def test_high_stress_three_days(self):
        window = [_day(i, stress=2) for i in (0, 2, 4)]
        assert detect_red_flags(window) == ("High stress",)

    def test_two_high_stress_days_is_not_a_flag(self):
        assert detect_red_flags([_day(0, stress=2), _day(1, stress=2)]) == ()

    def test_flags_combine_in_order(self):
        window = [
            _day(0, anxiety_1=3, stress=2, sleep_duration=SLEEP_UNDER_5H),
            _day(1, stress=2, sleep_duration=SLEEP_UNDER_5H),
            _day(2, stress=2),
        ]
        assert detect_red_flags(window) == ("GAD-2 ≥ 3", "Sleep < 5h", "High stress")


class TestAnalyze:
    def test_empty_window(self):
        result = analyze([], prior_streak=4)
        assert result.completion_rate == 0.0
        assert result.is_stable is False
        assert result.red_flags == ()
        assert result.consecutive_stable_days == 0

    def test_stable_five_of_seven(self):
        result = analyze(_calm_days([0, 1, 3, 4, 6]), prior_streak=2)
        assert result.completion_rate == pytest.approx(5 / 7)
        assert result.average_score == pytest.approx(2.0)
        assert result.slope == pytest.approx(0.0)
        assert result.is_stable
        assert result.consecutive_stable_days == 3
        assert result.can_reduce_frequency
        assert result.recommendation == "every_other_day"

    def test_four_days_is_not_enough(self):
        result = analyze(_calm_days([0, 1, 2, 3]), prior_streak=2)
        assert not result.is_stable
        assert result.consecutive_stable_days == 0

    def test_high_average_is_unstable(self):
        window = [_day(i, anxiety_1=2, anxiety_2=2) for i in range(7)]
        assert not analyze(window, prior_streak=0).is_stable

    def test_single_spike_is_unstable(self):
        window = _calm_days(range(6)) + [_day(6, anxiety_1=2, sleep_duration=SLEEP_5_6H, sleep_quality=2)]
        result = analyze(window, prior_streak=5)
        assert result.max_single_day == 6
        assert not result.is_stable

    def test_trend_is_unstable(self):
        window = [_day(i, sleep_quality=min(i // 3, 2), stress=min(i // 4, 2)) for i in range(7)]
        assert abs(analyze(window, prior_streak=0).slope) > 0.3
        assert not analyze(window, prior_streak=0).is_stable

    def test_red_flag_breaks_streak(self):
        window = _calm_days(range(6)) + [_day(6, anxiety_1=3)]
        result = analyze(window, prior_streak=10)
        assert result.has_red_flag
        assert result.consecutive_stable_days == 0
        assert result.recommendation == "increase_to_daily"

    def test_ratchet(self):
        window = _calm_days(range(7))
        streak = 0
        for expected in (1, 2, 3, 4):
            streak = analyze(window, prior_streak=streak).consecutive_stable_days
            assert streak == expected

    def test_negative_prior_is_floored(self):
        assert analyze(_calm_days(range(7)), prior_streak=-3).consecutive_stable_days == 1

    def test_order_independent(self):
        days = _calm_days(range(7))
        assert analyze(days, 1) == analyze(list(reversed(days)), 1)


class TestBuildWindow:
    def test_groups_by_date(self):
        rows = [
            StoredResponse("u", "q_anxiety_1", 1, "2026-03-01", "2026-03-01T08:00:00"),
            StoredResponse("u", "stress", 2, "2026-03-01", "2026-03-01T08:00:00"),
            StoredResponse("u", "stress", 1, "2026-03-02", "2026-03-02T08:00:00"),
        ]
        window = build_daily_window(rows)
        assert [d.date for d in window] == ["2026-03-01", "2026-03-02"]
        assert window[0].daily_index == 3
        assert window[1].daily_index == 1

    def test_latest_write_wins(self):
        rows = [
            StoredResponse("u", "stress", 2, "2026-03-01", "2026-03-01T20:00:00"),
            StoredResponse("u", "stress", 0, "2026-03-01", "2026-03-01T08:00:00"),
        ]
        assert build_daily_window(rows)[0].stress_score == 2

    def test_falls_back_to_created_at_date(self):
        rows = [StoredResponse("u", "stress", 1, "", "2026-03-05T08:00:00")]
        assert build_daily_window(rows)[0].date == "2026-03-05"

    def test_skips_undated_rows(self):
        assert build_daily_window([StoredResponse("u", "stress", 1, "", "")]) == []


class TestReplaceDay:
    def test_replaces_existing_entry(self):
        window = _calm_days([0, 1])
        today = _day(1, stress=2)
        merged = replace_day(window, today)
        assert len(merged) == 2
        assert merged[-1] is today

    def test_adds_missing_entry_sorted(self):
        merged = replace_day(_calm_days([2]), _day(0))
        assert [d.date for d in merged] == ["2026-03-01", "2026-03-03"]


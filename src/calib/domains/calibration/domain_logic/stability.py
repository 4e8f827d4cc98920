"""Stability analysis over the trailing calibration window.

Computes completion rate, mean and peak daily index, a least-squares trend,
and red-flag conditions, then ratchets the consecutive-stable-days counter.
"""

from __future__ import annotations

import logging
import statistics
from datetime import date, timedelta
from typing import Iterable, Sequence

from calib.core.storage.models import StoredResponse
from calib.domains.calibration.domain_logic.calibration_models import (
    HIGH_ANXIETY_SCORE,
    HIGH_STRESS_DAYS,
    LOW_SLEEP_HOURS,
    LOW_SLEEP_RUN,
    MAX_ABS_SLOPE,
    MAX_AVERAGE_SCORE,
    MAX_SINGLE_DAY,
    MAX_STRESS_CODE,
    MIN_COMPLETION_RATE,
    RED_FLAG_ANXIETY,
    RED_FLAG_HIGH_STRESS,
    RED_FLAG_LOW_SLEEP,
    WINDOW_DAYS,
    DailyScore,
    StabilityWindow,
)
from calib.domains.calibration.domain_logic.scoring import score

logger = logging.getLogger(__name__)


def compute_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of ``values`` against index 0..n-1.

    Returns 0.0 for fewer than two points.
    """
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = (n - 1) * n / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = (n - 1) * n * (2 * n - 1) / 6

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def _is_next_day(previous: DailyScore, current: DailyScore) -> bool:
    """Whether two observed days are adjacent on the calendar.

    Days without a parseable date are treated as adjacent in sequence.
    """
    try:
        prev_day = date.fromisoformat(previous.date)
        cur_day = date.fromisoformat(current.date)
    except ValueError:
        return True
    return cur_day - prev_day == timedelta(days=1)


def detect_red_flags(window: Sequence[DailyScore]) -> tuple[str, ...]:
    """Named red-flag conditions present anywhere in a date-ordered window."""
    flags: list[str] = []

    if any(day.anxiety_score >= HIGH_ANXIETY_SCORE for day in window):
        flags.append(RED_FLAG_ANXIETY)

    run = 0
    previous: DailyScore | None = None
    for day in window:
        low = day.sleep_hours is not None and day.sleep_hours < LOW_SLEEP_HOURS
        if not low:
            run = 0
        elif run and previous is not None and _is_next_day(previous, day):
            run += 1
        else:
            run = 1
        previous = day
        if run >= LOW_SLEEP_RUN:
            flags.append(RED_FLAG_LOW_SLEEP)
            break

    high_stress_days = sum(1 for day in window if day.stress_code == MAX_STRESS_CODE)
    if high_stress_days >= HIGH_STRESS_DAYS:
        flags.append(RED_FLAG_HIGH_STRESS)

    return tuple(flags)


def analyze(window: Sequence[DailyScore], prior_streak: int) -> StabilityWindow:
    """Analyze a trailing window of daily scores.

    Args:
        window: Observed days (at most one per date). Sorted by date here;
            undated entries keep their given order.
        prior_streak: ``consecutive_stable_days`` from the previous cycle.

    Returns:
        The stability window. The streak is ``prior_streak + 1`` when the
        stability predicate holds, otherwise 0.
    """
    if not window:
        return StabilityWindow(
            completion_rate=0.0,
            average_score=0.0,
            max_single_day=0,
            slope=0.0,
            red_flags=(),
            consecutive_stable_days=0,
            is_stable=False,
            data_points=0,
        )

    days = sorted(window, key=lambda d: d.date)
    scores = [float(d.daily_index) for d in days]

    completion_rate = min(len(days) / WINDOW_DAYS, 1.0)
    average_score = statistics.mean(scores)
    max_single_day = int(max(scores))
    slope = compute_slope(scores)
    red_flags = detect_red_flags(days)

    is_stable = (
        completion_rate >= MIN_COMPLETION_RATE
        and average_score <= MAX_AVERAGE_SCORE
        and max_single_day <= MAX_SINGLE_DAY
        and abs(slope) <= MAX_ABS_SLOPE
        and not red_flags
    )
    streak = max(prior_streak, 0) + 1 if is_stable else 0

    logger.debug(
        "Stability: n=%d completion=%.2f avg=%.2f max=%d slope=%.3f flags=%s streak=%d",
        len(days), completion_rate, average_score, max_single_day, slope, red_flags, streak,
    )

    return StabilityWindow(
        completion_rate=completion_rate,
        average_score=average_score,
        max_single_day=max_single_day,
        slope=slope,
        red_flags=red_flags,
        consecutive_stable_days=streak,
        is_stable=is_stable,
        data_points=len(days),
    )


def build_daily_window(rows: Iterable[StoredResponse]) -> list[DailyScore]:
    """Group stored per-question rows into one scored day per date.

    Rows without a response date fall back to the date prefix of their
    write time; rows with neither are skipped. Within a day the latest
    write of a question wins.
    """
    by_date: dict[str, dict[str, int]] = {}
    written: dict[tuple[str, str], str] = {}

    for row in rows:
        day = row.response_date or (row.created_at or "")[:10]
        if not day:
            continue
        key = (day, row.question_id)
        if key in written and written[key] > (row.created_at or ""):
            continue
        written[key] = row.created_at or ""
        by_date.setdefault(day, {})[row.question_id] = row.answer_value

    return [score(answers, date=day) for day, answers in sorted(by_date.items())]


def replace_day(window: Sequence[DailyScore], today: DailyScore) -> list[DailyScore]:
    """Return ``window`` with the entry for ``today.date`` replaced (or added)."""
    merged = [d for d in window if d.date != today.date]
    merged.append(today)
    return sorted(merged, key=lambda d: d.date)

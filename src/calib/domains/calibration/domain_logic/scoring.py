"""Response scorer — maps raw answer codes to sub-scores and the daily index.

Every function here is total: out-of-range codes are clamped and missing
answers contribute 0, so a widening answer catalog or a partial submission
never breaks the pipeline.
"""

from __future__ import annotations

from typing import Mapping

from calib.domains.calibration.domain_logic.calibration_models import (
    HIGH_ANXIETY_SCORE,
    Q_ANXIETY_1,
    Q_ANXIETY_2,
    Q_SAFETY,
    Q_SLEEP_DURATION,
    Q_SLEEP_QUALITY,
    Q_STRESS,
    Absent,
    Answer,
    DailyScore,
    Present,
    answer_for,
)

# Sleep-duration answers are bucket codes in catalog order, not hours:
#   0: 7-8h   1: 8-9h   2: 6-7h   3: 5-6h   4: >9h   5: <5h
SLEEP_HOURS_BY_CODE = {
    0: 7.5,
    1: 8.5,
    2: 6.5,
    3: 5.5,
    4: 10.5,
    5: 4.0,
}
DEFAULT_SLEEP_HOURS = 7.0

# U-shaped cost: short sleep costs most, long sleep costs as much as 6-7h.
_SLEEP_DURATION_SCORE_BY_CODE = {
    3: 2,  # 5-6h
    5: 2,  # <5h
    2: 1,  # 6-7h
    4: 1,  # >9h
}

_SLEEP_QUALITY_LABELS = {0: "good", 1: "average", 2: "poor"}


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _clamped(answer: Answer, low: int, high: int) -> int:
    if isinstance(answer, Present):
        return clamp(answer.value, low, high)
    return 0


def sleep_duration_score(code: int) -> int:
    """Score a sleep-duration bucket code (0-2). Unknown codes score 0."""
    return _SLEEP_DURATION_SCORE_BY_CODE.get(code, 0)


def sleep_hours(code: int) -> float:
    """Implied hours for a sleep-duration bucket code."""
    return SLEEP_HOURS_BY_CODE.get(code, DEFAULT_SLEEP_HOURS)


def score(answers: Mapping[str, int], *, date: str = "") -> DailyScore:
    """Score one day's answers.

    Args:
        answers: Question id to answer code. Missing keys contribute 0.
        date: Optional calendar date carried onto the result for windowing.
    """
    anxiety = _clamped(answer_for(answers, Q_ANXIETY_1), 0, 3) + _clamped(
        answer_for(answers, Q_ANXIETY_2), 0, 3
    )

    duration = answer_for(answers, Q_SLEEP_DURATION)
    if isinstance(duration, Present):
        duration_score = sleep_duration_score(duration.value)
        hours: float | None = sleep_hours(duration.value)
    else:
        duration_score = 0
        hours = None

    quality = _clamped(answer_for(answers, Q_SLEEP_QUALITY), 0, 2)

    stress_answer = answer_for(answers, Q_STRESS)
    stress = _clamped(stress_answer, 0, 2)
    stress_code = None if isinstance(stress_answer, Absent) else stress

    return DailyScore(
        anxiety_score=anxiety,
        sleep_duration_score=duration_score,
        sleep_quality_score=quality,
        stress_score=stress,
        daily_index=anxiety + duration_score + quality + stress,
        sleep_hours=hours,
        stress_code=stress_code,
        date=date,
    )


def trigger_full_scale(daily: DailyScore) -> str | None:
    """Name of the full instrument to follow up with, if the short screener fired."""
    return "GAD7" if daily.anxiety_score >= HIGH_ANXIETY_SCORE else None


def is_safety_triggered(answers: Mapping[str, int]) -> bool:
    """True when the high-risk question was answered with any nonzero value."""
    answer = answer_for(answers, Q_SAFETY)
    return isinstance(answer, Present) and answer.value >= 1


# ---------------------------------------------------------------------------
# Daily summary mappers
# ---------------------------------------------------------------------------

def sleep_minutes(answers: Mapping[str, int]) -> int | None:
    duration = answer_for(answers, Q_SLEEP_DURATION)
    if isinstance(duration, Present):
        return int(sleep_hours(duration.value) * 60)
    return None


def sleep_quality_label(answers: Mapping[str, int]) -> str | None:
    quality = answer_for(answers, Q_SLEEP_QUALITY)
    if isinstance(quality, Present):
        return _SLEEP_QUALITY_LABELS.get(quality.value)
    return None


def stress_level_1_to_10(answers: Mapping[str, int]) -> int | None:
    """Stress code (0-2) rescaled to the 1-10 scale of the daily log."""
    stress = answer_for(answers, Q_STRESS)
    if isinstance(stress, Present):
        return clamp(stress.value * 3 + 3, 1, 10)
    return None

"""Calibration domain models and constants."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal, Mapping, Union


# ---------------------------------------------------------------------------
# Question ids scored by the daily index
# ---------------------------------------------------------------------------

Q_ANXIETY_1 = "q_anxiety_1"
Q_ANXIETY_2 = "q_anxiety_2"
Q_SLEEP_DURATION = "sleep_duration"
Q_SLEEP_QUALITY = "sleep_quality"
Q_STRESS = "stress"
# PHQ-9 item 9 (self-harm ideation); any nonzero answer is a safety event
Q_SAFETY = "phq9_q9"

# ---------------------------------------------------------------------------
# Stability thresholds
# ---------------------------------------------------------------------------

WINDOW_DAYS = 7
MIN_COMPLETION_RATE = 0.71      # ~5 of 7 days
MAX_AVERAGE_SCORE = 3.0
MAX_SINGLE_DAY = 5
MAX_ABS_SLOPE = 0.3
STABLE_STREAK_TO_REDUCE = 3     # stable cycles before every-other-day
MAX_STRESS_CODE = 2
HIGH_STRESS_DAYS = 3
HIGH_ANXIETY_SCORE = 3
LOW_SLEEP_HOURS = 5.0
LOW_SLEEP_RUN = 2

RED_FLAG_ANXIETY = "GAD-2 ≥ 3"
RED_FLAG_LOW_SLEEP = "Sleep < 5h"
RED_FLAG_HIGH_STRESS = "High stress"

# ---------------------------------------------------------------------------
# Adaptive selection
# ---------------------------------------------------------------------------

DEFAULT_MAX_QUESTIONS = 7
EVOLUTION_TRIGGER_DAYS = 7

Cadence = Literal["daily", "every_other_day"]
CADENCE_DAILY: Cadence = "daily"
CADENCE_EVERY_OTHER_DAY: Cadence = "every_other_day"

REASON_DAILY = "daily"
REASON_STABLE = "stable_7d"
REASON_USER_CHOICE = "user_choice"
REASON_RED_FLAG_PREFIX = "red_flag:"

QuestionType = Literal["single", "slider"]


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Present:
    """An answer the user gave."""

    value: int


@dataclass(frozen=True)
class Absent:
    """No answer recorded for the question (skipped or not asked)."""


ABSENT = Absent()

Answer = Union[Present, Absent]


def answer_for(answers: Mapping[str, int], question_id: str) -> Answer:
    """Look up a question in a raw answer mapping."""
    if question_id in answers and answers[question_id] is not None:
        return Present(int(answers[question_id]))
    return ABSENT


@dataclass(frozen=True)
class DailyResponseSet:
    """One user's answers for one calendar date."""

    date: str
    answers: Mapping[str, int]


# ---------------------------------------------------------------------------
# Scores and windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyScore:
    """Sub-scores and composite index for one day's answers."""

    anxiety_score: int             # 0-6
    sleep_duration_score: int      # 0-2
    sleep_quality_score: int       # 0-2
    stress_score: int              # 0-2
    daily_index: int               # 0-12
    sleep_hours: float | None = None
    stress_code: int | None = None
    date: str = ""


@dataclass(frozen=True)
class StabilityWindow:
    """Trailing-window statistics used to drive cadence decisions."""

    completion_rate: float
    average_score: float
    max_single_day: int
    slope: float
    red_flags: tuple[str, ...]
    consecutive_stable_days: int
    is_stable: bool
    data_points: int = 0

    @property
    def has_red_flag(self) -> bool:
        return bool(self.red_flags)

    @property
    def can_reduce_frequency(self) -> bool:
        return self.consecutive_stable_days >= STABLE_STREAK_TO_REDUCE

    @property
    def recommendation(self) -> str:
        if self.has_red_flag:
            return "increase_to_daily"
        if self.can_reduce_frequency:
            return CADENCE_EVERY_OTHER_DAY
        return CADENCE_DAILY

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_stable": self.is_stable,
            "completion_rate": round(self.completion_rate, 4),
            "average_score": round(self.average_score, 4),
            "max_single_day": self.max_single_day,
            "slope": round(self.slope, 4),
            "red_flags": list(self.red_flags),
            "consecutive_stable_days": self.consecutive_stable_days,
            "can_reduce_frequency": self.can_reduce_frequency,
            "recommendation": self.recommendation,
            "data_points": self.data_points,
        }


# ---------------------------------------------------------------------------
# Frequency
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FrequencyDecision:
    """Output of the frequency policy for one cycle."""

    cadence: Cadence
    reason: str


@dataclass(frozen=True)
class FrequencyState:
    """Persisted cadence for one user."""

    cadence: Cadence = CADENCE_DAILY
    reason: str | None = None
    last_change_at: datetime | None = None


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuestionOption:
    value: int
    label: str


@dataclass(frozen=True)
class CalibrationQuestion:
    """One prompt shown during a calibration session."""

    id: str
    text: str
    type: QuestionType
    category: str
    options: tuple[QuestionOption, ...] = ()
    min: int | None = None
    max: int | None = None
    is_safety_question: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "category": self.category,
            "is_safety_question": self.is_safety_question,
        }
        if self.type == "slider":
            data["min"] = self.min
            data["max"] = self.max
        else:
            data["options"] = [{"value": o.value, "label": o.label} for o in self.options]
        return data


@dataclass(frozen=True)
class QuestionBank:
    """Immutable question catalog: fixed base set, per-goal banks, evolution bank."""

    base: tuple[CalibrationQuestion, ...]
    goals: Mapping[str, tuple[CalibrationQuestion, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    evolution: tuple[CalibrationQuestion, ...] = ()
    aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    version: str = ""

    def goal_questions(self, category: str) -> tuple[CalibrationQuestion, ...]:
        """Questions for a goal category (after alias resolution), or ()."""
        key = category.strip().lower()
        key = self.aliases.get(key, key)
        return self.goals.get(key, ())


# ---------------------------------------------------------------------------
# Session result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyCalibrationResult:
    """What a finished calibration session hands to the presentation layer."""

    daily_index: int
    anxiety_score: int
    sleep_duration_score: int
    sleep_quality_score: int
    stress_score: int
    trigger_full_scale: str | None
    safety_triggered: bool
    stability: StabilityWindow | None
    decision: FrequencyDecision | None
    saved_to_cloud: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_index": self.daily_index,
            "anxiety_score": self.anxiety_score,
            "sleep_duration_score": self.sleep_duration_score,
            "sleep_quality_score": self.sleep_quality_score,
            "stress_score": self.stress_score,
            "trigger_full_scale": self.trigger_full_scale,
            "safety_triggered": self.safety_triggered,
            "stability": self.stability.to_dict() if self.stability else None,
            "cadence": self.decision.cadence if self.decision else None,
            "cadence_reason": self.decision.reason if self.decision else None,
            "saved_to_cloud": self.saved_to_cloud,
        }

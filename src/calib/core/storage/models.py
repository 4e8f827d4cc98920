"""Data models for the calibration persistence layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class StoredResponse:
    """One decrypted per-question answer row."""

    user_id: str
    question_id: str
    answer_value: int
    response_date: str  # YYYY-MM-DD, user-local
    created_at: str = ""  # ISO 8601
    scale_id: str = "DAILY"
    source: str = "daily"


@dataclass
class DailyWellnessLog:
    """Derived per-day summary. Never the source of truth for scores."""

    user_id: str
    log_date: str
    daily_index: int
    anxiety_score: int
    sleep_duration_minutes: int | None = None
    sleep_quality: str | None = None  # 'good' | 'average' | 'poor'
    stress_level: int | None = None  # 1-10
    updated_at: str = ""
    id: str = ""


@dataclass
class FrequencyPreferences:
    """Stored check-in cadence for one user."""

    user_id: str
    daily_frequency: str  # 'daily' | 'every_other_day'
    daily_frequency_reason: str | None = None
    last_frequency_change: str | None = None


@dataclass
class CalibrationProfile:
    """Cross-session calibration state for one user."""

    user_id: str
    last_daily_calibration: str | None = None
    daily_stability_streak: int = 0


@dataclass
class PhaseGoal:
    """An active wellness goal driving adaptive questions."""

    id: str
    user_id: str
    category: str
    title: str = ""
    created_at: str = ""

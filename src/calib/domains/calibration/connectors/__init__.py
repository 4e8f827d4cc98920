"""Calibration connectors — the engine's view of persistence and time."""

from __future__ import annotations

from datetime import date, datetime
from typing import Mapping, Protocol, runtime_checkable

from calib.domains.calibration.domain_logic.calibration_models import (
    DailyScore,
    FrequencyState,
)


@runtime_checkable
class CalibrationStore(Protocol):
    """Keyed store behind a calibration session.

    Writes are idempotent upserts keyed by (user, date, question) or
    (user, date), except the audit appends. Implementations may raise any
    exception; the session treats every failure as recoverable.
    """

    async def save_responses(
        self, user_id: str, response_date: date, answers: Mapping[str, int], now: datetime
    ) -> None:
        """Upsert one raw answer row per question."""
        ...

    async def save_daily_summary(
        self,
        user_id: str,
        log_date: date,
        answers: Mapping[str, int],
        daily: DailyScore,
        now: datetime,
    ) -> None:
        """Upsert the derived summary row for (user, date)."""
        ...

    async def fetch_window(self, user_id: str, start: date, end: date) -> list[DailyScore]:
        """Scored days with stored answers in ``[start, end]``, in date order."""
        ...

    async def get_stable_streak(self, user_id: str) -> int:
        """``consecutive_stable_days`` carried from the previous cycle."""
        ...

    async def get_frequency_state(self, user_id: str) -> FrequencyState | None:
        """Stored cadence, or None if never set."""
        ...

    async def get_last_calibrated_at(self, user_id: str) -> datetime | None:
        """Time of the last completed cycle, or None."""
        ...

    async def get_goal_categories(self, user_id: str) -> list[str]:
        """Categories of the user's active goals, newest first."""
        ...

    async def commit_cycle(
        self,
        user_id: str,
        *,
        streak: int,
        state: FrequencyState | None,
        calibrated_at: datetime,
    ) -> None:
        """Atomically store the new streak and, if not None, the new cadence."""
        ...

    async def reset_frequency(self, user_id: str, state: FrequencyState) -> None:
        """Atomically store a user-chosen cadence and zero the streak."""
        ...

    async def log_scale_trigger(
        self, user_id: str, *, short_scale: str, short_score: int, full_scale: str
    ) -> None:
        """Append a scale-trigger audit entry."""
        ...

    async def log_safety_event(
        self, user_id: str, *, trigger_source: str, trigger_value: int
    ) -> None:
        """Append a safety audit entry."""
        ...


@runtime_checkable
class Clock(Protocol):
    """Source of "now" and of the user's local "today"."""

    def now(self) -> datetime:
        """Current timezone-aware time."""
        ...

    def today(self) -> date:
        """Current calendar date in the user's timezone."""
        ...

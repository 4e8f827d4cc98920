"""Test helpers: answer builders, a fixed clock and an in-memory store."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping

from calib.domains.calibration.domain_logic.calibration_models import (
    DailyScore,
    FrequencyState,
)


def run_async(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ---------------------------------------------------------------------------
# Answer helpers
# ---------------------------------------------------------------------------

# Sleep-duration bucket codes as listed in the catalog
SLEEP_7_8H = 0
SLEEP_8_9H = 1
SLEEP_6_7H = 2
SLEEP_5_6H = 3
SLEEP_OVER_9H = 4
SLEEP_UNDER_5H = 5


def make_answers(
    anxiety_1: int = 0,
    anxiety_2: int = 0,
    sleep_duration: int = SLEEP_7_8H,
    sleep_quality: int = 0,
    stress: int = 0,
    **extra: int,
) -> dict[str, int]:
    """Build a base-question answer set with calm defaults."""
    answers = {
        "q_anxiety_1": anxiety_1,
        "q_anxiety_2": anxiety_2,
        "sleep_duration": sleep_duration,
        "sleep_quality": sleep_quality,
        "stress": stress,
    }
    answers.update(extra)
    return answers


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FixedClock:
    """Clock pinned to a given instant; ``advance()`` moves it forward."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

    @property
    def tz(self):
        return self._now.tzinfo

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self._now = self._now + timedelta(days=days, hours=hours)



# ---------------------------------------------------------------------------
# In-memory fake store
# ---------------------------------------------------------------------------

class FakeStore:
    """In-memory CalibrationStore.

    ``fail_on`` names methods that raise ``RuntimeError``. Every method
    yields to the event loop once so concurrent callers interleave.
    """

    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.fail_on: set[str] = set(fail_on or ())
        self.calls: list[str] = []
        self.responses: dict[tuple[str, date], dict[str, int]] = {}
        self.summaries: dict[tuple[str, date], DailyScore] = {}
        self.window: dict[str, list[DailyScore]] = {}
        self.streaks: dict[str, int] = {}
        self.states: dict[str, FrequencyState] = {}
        self.last_calibrated: dict[str, datetime] = {}
        self.goals: dict[str, list[str]] = {}
        self.scale_triggers: list[dict[str, Any]] = []
        self.safety_events: list[dict[str, Any]] = []
        self.state_writes = 0

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        await asyncio.sleep(0)
        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

    async def save_responses(
        self, user_id: str, response_date: date, answers: Mapping[str, int], now: datetime
    ) -> None:
        await self._enter("save_responses")
        self.responses.setdefault((user_id, response_date), {}).update(answers)

    async def save_daily_summary(
        self,
        user_id: str,
        log_date: date,
        answers: Mapping[str, int],
        daily: DailyScore,
        now: datetime,
    ) -> None:
        await self._enter("save_daily_summary")
        self.summaries[(user_id, log_date)] = daily

    async def fetch_window(self, user_id: str, start: date, end: date) -> list[DailyScore]:
        await self._enter("fetch_window")
        return [
            d for d in self.window.get(user_id, [])
            if start.isoformat() <= d.date <= end.isoformat()
        ]

    async def get_stable_streak(self, user_id: str) -> int:
        await self._enter("get_stable_streak")
        return self.streaks.get(user_id, 0)

    async def get_frequency_state(self, user_id: str) -> FrequencyState | None:
        await self._enter("get_frequency_state")
        return self.states.get(user_id)

    async def get_last_calibrated_at(self, user_id: str) -> datetime | None:
        await self._enter("get_last_calibrated_at")
        return self.last_calibrated.get(user_id)

    async def get_goal_categories(self, user_id: str) -> list[str]:
        await self._enter("get_goal_categories")
        return list(self.goals.get(user_id, []))

    async def commit_cycle(
        self,
        user_id: str,
        *,
        streak: int,
        state: FrequencyState | None,
        calibrated_at: datetime,
    ) -> None:
        await self._enter("commit_cycle")
        self.streaks[user_id] = streak
        self.last_calibrated[user_id] = calibrated_at
        if state is not None:
            self.states[user_id] = state
            self.state_writes += 1

    async def reset_frequency(self, user_id: str, state: FrequencyState) -> None:
        await self._enter("reset_frequency")
        self.states[user_id] = state
        self.streaks[user_id] = 0
        self.state_writes += 1

    async def log_scale_trigger(
        self, user_id: str, *, short_scale: str, short_score: int, full_scale: str
    ) -> None:
        await self._enter("log_scale_trigger")
        self.scale_triggers.append({
            "user_id": user_id,
            "short_scale": short_scale,
            "short_score": short_score,
            "full_scale": full_scale,
        })

    async def log_safety_event(
        self, user_id: str, *, trigger_source: str, trigger_value: int
    ) -> None:
        await self._enter("log_safety_event")
        self.safety_events.append({
            "user_id": user_id,
            "trigger_source": trigger_source,
            "trigger_value": trigger_value,
        })

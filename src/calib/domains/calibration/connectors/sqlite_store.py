"""CalibrationStore backed by the local SQLite data bank."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Mapping

from calib.core.audit.logger import AuditLogger
from calib.core.storage.models import DailyWellnessLog, FrequencyPreferences
from calib.core.storage.repository import CalibrationRepository
from calib.domains.calibration.domain_logic.calibration_models import (
    CADENCE_DAILY,
    CADENCE_EVERY_OTHER_DAY,
    DailyScore,
    FrequencyState,
)
from calib.domains.calibration.domain_logic.scoring import (
    sleep_minutes,
    sleep_quality_label,
    stress_level_1_to_10,
)
from calib.domains.calibration.domain_logic.stability import build_daily_window

logger = logging.getLogger(__name__)

_CADENCES = {CADENCE_DAILY, CADENCE_EVERY_OTHER_DAY}


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring unparseable timestamp %r", value)
        return None


def _to_state(prefs: FrequencyPreferences) -> FrequencyState:
    cadence = prefs.daily_frequency if prefs.daily_frequency in _CADENCES else CADENCE_DAILY
    return FrequencyState(
        cadence=cadence,
        reason=prefs.daily_frequency_reason,
        last_change_at=_parse_ts(prefs.last_frequency_change),
    )


def _to_preferences(user_id: str, state: FrequencyState) -> FrequencyPreferences:
    return FrequencyPreferences(
        user_id=user_id,
        daily_frequency=state.cadence,
        daily_frequency_reason=state.reason,
        last_frequency_change=state.last_change_at.isoformat() if state.last_change_at else None,
    )


class SQLiteCalibrationStore:
    """Adapts CalibrationRepository (sync) to the async CalibrationStore protocol.

    Audit entries go to ``audit_logger`` when one is given.
    """

    def __init__(
        self,
        repository: CalibrationRepository,
        audit_logger: AuditLogger | None = None,
        *,
        goal_limit: int = 3,
    ) -> None:
        self._repo = repository
        self._audit = audit_logger
        self._goal_limit = goal_limit

    async def save_responses(
        self, user_id: str, response_date: date, answers: Mapping[str, int], now: datetime
    ) -> None:
        self._repo.upsert_responses(
            user_id,
            response_date.isoformat(),
            dict(answers),
            created_at=now.isoformat(),
        )

    async def save_daily_summary(
        self,
        user_id: str,
        log_date: date,
        answers: Mapping[str, int],
        daily: DailyScore,
        now: datetime,
    ) -> None:
        self._repo.upsert_wellness_log(DailyWellnessLog(
            user_id=user_id,
            log_date=log_date.isoformat(),
            daily_index=daily.daily_index,
            anxiety_score=daily.anxiety_score,
            sleep_duration_minutes=sleep_minutes(answers),
            sleep_quality=sleep_quality_label(answers),
            stress_level=stress_level_1_to_10(answers),
            updated_at=now.isoformat(),
        ))

    async def fetch_window(self, user_id: str, start: date, end: date) -> list[DailyScore]:
        rows = self._repo.get_responses(
            user_id, since=start.isoformat(), until=end.isoformat()
        )
        return build_daily_window(rows)

    async def get_stable_streak(self, user_id: str) -> int:
        profile = self._repo.get_profile(user_id)
        return profile.daily_stability_streak if profile else 0

    async def get_frequency_state(self, user_id: str) -> FrequencyState | None:
        prefs = self._repo.get_preferences(user_id)
        return _to_state(prefs) if prefs else None

    async def get_last_calibrated_at(self, user_id: str) -> datetime | None:
        profile = self._repo.get_profile(user_id)
        return _parse_ts(profile.last_daily_calibration) if profile else None

    async def get_goal_categories(self, user_id: str) -> list[str]:
        goals = self._repo.get_recent_goals(user_id, limit=self._goal_limit)
        return [goal.category for goal in goals]

    async def commit_cycle(
        self,
        user_id: str,
        *,
        streak: int,
        state: FrequencyState | None,
        calibrated_at: datetime,
    ) -> None:
        previous = self._repo.get_preferences(user_id) if state is not None else None
        self._repo.save_cycle(
            user_id,
            streak=streak,
            calibrated_at=calibrated_at.isoformat(),
            preferences=_to_preferences(user_id, state) if state is not None else None,
        )
        if state is not None and self._audit is not None:
            self._audit.log_frequency_change(
                user_id,
                cadence=state.cadence,
                reason=state.reason or "",
                previous_cadence=previous.daily_frequency if previous else None,
            )

    async def reset_frequency(self, user_id: str, state: FrequencyState) -> None:
        previous = self._repo.get_preferences(user_id)
        self._repo.reset_frequency(_to_preferences(user_id, state))
        if self._audit is not None:
            self._audit.log_frequency_change(
                user_id,
                cadence=state.cadence,
                reason=state.reason or "",
                previous_cadence=previous.daily_frequency if previous else None,
            )

    async def log_scale_trigger(
        self, user_id: str, *, short_scale: str, short_score: int, full_scale: str
    ) -> None:
        if self._audit is not None:
            self._audit.log_scale_trigger(
                user_id, short_scale=short_scale, short_score=short_score, full_scale=full_scale
            )

    async def log_safety_event(
        self, user_id: str, *, trigger_source: str, trigger_value: int
    ) -> None:
        if self._audit is not None:
            self._audit.log_safety_event(
                user_id, trigger_source=trigger_source, trigger_value=trigger_value
            )

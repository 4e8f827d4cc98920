"""Check-in scheduling: whether to prompt today, and the user override."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Any

from calib.domains.calibration.connectors import CalibrationStore, Clock
from calib.domains.calibration.domain_logic.calibration_models import (
    CADENCE_DAILY,
    FrequencyState,
)
from calib.domains.calibration.domain_logic.frequency_policy import (
    next_eligible_date,
    should_calibrate,
    user_override,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleStatus:
    """Snapshot of a user's calibration schedule."""

    cadence: str
    reason: str | None
    next_eligible: date | None
    should_calibrate_today: bool
    consecutive_stable_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cadence": self.cadence,
            "reason": self.reason,
            "next_eligible_date": self.next_eligible.isoformat() if self.next_eligible else None,
            "should_calibrate_today": self.should_calibrate_today,
            "consecutive_stable_days": self.consecutive_stable_days,
        }


async def get_schedule_status(
    store: CalibrationStore,
    user_id: str,
    clock: Clock,
    *,
    force: bool = False,
    tz: tzinfo | None = None,
) -> ScheduleStatus:
    """Read the stored schedule and decide whether to prompt today.

    A failed read falls back to daily cadence and prompts (never hides a
    check-in because the store is unavailable).
    """
    try:
        state = await store.get_frequency_state(user_id)
        last_calibrated_at = await store.get_last_calibrated_at(user_id)
        streak = await store.get_stable_streak(user_id)
    except Exception:
        logger.warning("Could not read schedule for %s; defaulting to daily", user_id, exc_info=True)
        return ScheduleStatus(
            cadence=CADENCE_DAILY,
            reason=None,
            next_eligible=None,
            should_calibrate_today=True,
            consecutive_stable_days=0,
        )

    today = clock.today()
    return ScheduleStatus(
        cadence=state.cadence if state else CADENCE_DAILY,
        reason=state.reason if state else None,
        next_eligible=next_eligible_date(state, last_calibrated_at, tz=tz),
        should_calibrate_today=should_calibrate(
            state, last_calibrated_at, today, force=force, tz=tz
        ),
        consecutive_stable_days=streak,
    )


async def reset_to_daily(store: CalibrationStore, user_id: str, clock: Clock) -> FrequencyState:
    """Apply the user's explicit choice to go back to daily check-ins.

    The stable streak restarts from 0; the next automatic cycle re-evaluates
    the cadence as usual.
    """
    state = user_override(clock.now())
    await store.reset_frequency(user_id, state)
    logger.info("User %s reset calibration cadence to daily", user_id)
    return state

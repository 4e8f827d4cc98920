"""Frequency policy — decides the next check-in cadence.

De-escalation to every-other-day needs several consecutive stable cycles;
escalation back to daily is immediate on any red flag. Red flags always win
over de-escalation eligibility in the same cycle.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo

from calib.domains.calibration.domain_logic.calibration_models import (
    CADENCE_DAILY,
    CADENCE_EVERY_OTHER_DAY,
    REASON_DAILY,
    REASON_RED_FLAG_PREFIX,
    REASON_STABLE,
    REASON_USER_CHOICE,
    STABLE_STREAK_TO_REDUCE,
    FrequencyDecision,
    FrequencyState,
    StabilityWindow,
)

_INTERVAL_DAYS = {
    CADENCE_DAILY: 1,
    CADENCE_EVERY_OTHER_DAY: 2,
}


def decide(stability: StabilityWindow) -> FrequencyDecision:
    """Pick the cadence for the next cycle, with an audit reason code."""
    if stability.red_flags:
        return FrequencyDecision(
            cadence=CADENCE_DAILY,
            reason=REASON_RED_FLAG_PREFIX + ", ".join(stability.red_flags),
        )
    if stability.consecutive_stable_days >= STABLE_STREAK_TO_REDUCE:
        return FrequencyDecision(cadence=CADENCE_EVERY_OTHER_DAY, reason=REASON_STABLE)
    return FrequencyDecision(cadence=CADENCE_DAILY, reason=REASON_DAILY)


def apply_decision(
    current: FrequencyState | None,
    decision: FrequencyDecision,
    now: datetime,
) -> FrequencyState:
    """Fold a decision into the stored state.

    The current state is returned untouched when neither cadence nor reason
    changes, so ``last_change_at`` only moves on a real change. The default
    ``daily`` decision is a no-op for a user who already has a state: only a
    red flag escalates an every-other-day user back to daily.
    """
    if current is not None and (
        decision.reason == REASON_DAILY
        or (current.cadence == decision.cadence and current.reason == decision.reason)
    ):
        return current
    return FrequencyState(cadence=decision.cadence, reason=decision.reason, last_change_at=now)


def user_override(now: datetime) -> FrequencyState:
    """State for a user who explicitly asks to go back to daily check-ins."""
    return FrequencyState(cadence=CADENCE_DAILY, reason=REASON_USER_CHOICE, last_change_at=now)


def next_eligible_date(
    state: FrequencyState | None,
    last_calibrated_at: datetime | None = None,
    *,
    tz: tzinfo | None = None,
) -> date | None:
    """First date a calibration prompt may be shown again.

    Anchored on the later of the last cadence change and the last completed
    calibration, taken as a calendar date in ``tz`` when given. None means
    eligible now (no anchor yet).
    """
    anchors = [
        moment
        for moment in (state.last_change_at if state else None, last_calibrated_at)
        if moment is not None
    ]
    if not anchors:
        return None

    cadence = state.cadence if state else CADENCE_DAILY
    anchor = max(anchors)
    if tz is not None:
        anchor = anchor.astimezone(tz)
    return anchor.date() + timedelta(days=_INTERVAL_DAYS.get(cadence, 1))


def should_calibrate(
    state: FrequencyState | None,
    last_calibrated_at: datetime | None,
    today: date,
    *,
    force: bool = False,
    tz: tzinfo | None = None,
) -> bool:
    """Whether to prompt for a calibration on ``today``."""
    if force:
        return True
    eligible = next_eligible_date(state, last_calibrated_at, tz=tz)
    return eligible is None or today >= eligible

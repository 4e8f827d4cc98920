"""MCP tools for daily calibration.

These tools expose the calibration engine to a presentation layer: the
question list for today, submission of a day's answers, the schedule
status, the user's cadence override, and goal registration.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import tzinfo
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from calib.domains.calibration.domain_logic.calibration_models import QuestionBank
from calib.domains.calibration.domain_logic.question_selector import normalize_goal_categories
from calib.domains.calibration.scheduling import get_schedule_status, reset_to_daily
from calib.domains.calibration.session import CalibrationSession

if TYPE_CHECKING:
    from calib.core.audit.logger import AuditLogger
    from calib.core.storage.repository import CalibrationRepository
    from calib.domains.calibration.connectors import CalibrationStore, Clock

logger = logging.getLogger(__name__)


def register_calibration_tools(
    mcp: FastMCP,
    store: CalibrationStore,
    repository: CalibrationRepository,
    clock: Clock,
    bank: QuestionBank,
    *,
    max_questions: int = 7,
    tz: tzinfo | None = None,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register calibration tools on the MCP server."""
    # Users with a submission running; checked and set before the first await
    submitting: set[str] = set()

    def _new_session(user_id: str) -> CalibrationSession:
        return CalibrationSession(
            user_id, store, clock=clock, bank=bank, max_questions=max_questions
        )

    def _audit(tool_name: str, tool_input: dict, user_id: str, start_time: float) -> None:
        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name,
                tool_input,
                user_id=user_id,
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

    @mcp.tool
    async def get_calibration_questions(ctx: Context, user_id: str) -> str:
        """List today's calibration questions for a user.

        The fixed base questions come first, followed by questions for the
        user's active goals and, on weekly stable-streak milestones, broader
        reflection questions.

        Args:
            user_id: The user to build the question list for.
        """
        start_time = time.monotonic()
        session = _new_session(user_id)
        await session.start()
        _audit("get_calibration_questions", {"user_id": user_id}, user_id, start_time)
        return json.dumps({
            "status": "ok",
            "user_id": user_id,
            "questions": [q.to_dict() for q in session.questions],
        }, ensure_ascii=False)

    @mcp.tool
    async def submit_daily_calibration(
        ctx: Context,
        user_id: str,
        answers: dict[str, int],
    ) -> str:
        """Score and record today's calibration answers.

        Returns the daily index (0-12), its sub-scores, the 7-day stability
        analysis and the resulting check-in cadence. ``saved_to_cloud`` is
        false when answers were scored but could not all be stored.

        Args:
            user_id: The user submitting.
            answers: Mapping of question id to answer code. May also carry
                ``phq9_q9`` from a PHQ-9 follow-up; any nonzero value there is
                recorded as a safety event.
        """
        start_time = time.monotonic()
        if not answers:
            return json.dumps({"status": "error", "message": "No answers provided."})

        if user_id in submitting:
            return json.dumps({"status": "error", "message": "Submission already in progress."})

        submitting.add(user_id)
        try:
            session = _new_session(user_id)
            await session.start()
            result = await session.submit_all(answers)
        finally:
            submitting.discard(user_id)

        _audit(
            "submit_daily_calibration",
            {"user_id": user_id, "answers": answers},
            user_id,
            start_time,
        )
        payload = {"status": "saved" if result.saved_to_cloud else "saved_locally"}
        payload.update(result.to_dict())
        return json.dumps(payload, ensure_ascii=False)

    @mcp.tool
    async def calibration_status(ctx: Context, user_id: str, force: bool = False) -> str:
        """Show a user's check-in cadence and whether to calibrate today.

        Args:
            user_id: The user to check.
            force: Report that a calibration is due even before the next eligible date.
        """
        status = await get_schedule_status(store, user_id, clock, force=force, tz=tz)
        payload = {"status": "ok", "user_id": user_id}
        payload.update(status.to_dict())
        return json.dumps(payload)

    @mcp.tool
    async def reset_calibration_frequency(ctx: Context, user_id: str) -> str:
        """Switch a user back to daily check-ins at their request.

        The stable streak restarts from zero. Automatic re-evaluation
        continues with the next calibration.

        Args:
            user_id: The user making the choice.
        """
        start_time = time.monotonic()
        try:
            state = await reset_to_daily(store, user_id, clock)
        except Exception as exc:
            logger.exception("Failed to reset cadence for %s", user_id)
            return json.dumps({
                "status": "error",
                "message": f"Could not reset cadence: {type(exc).__name__}",
            })
        _audit("reset_calibration_frequency", {"user_id": user_id}, user_id, start_time)
        return json.dumps({
            "status": "ok",
            "user_id": user_id,
            "cadence": state.cadence,
            "reason": state.reason,
            "should_calibrate_today": True,
        })

    @mcp.tool
    async def set_wellness_goal(
        ctx: Context,
        user_id: str,
        category: str,
        title: str = "",
    ) -> str:
        """Record an active wellness goal that adds a question to daily calibration.

        Args:
            user_id: The user setting the goal.
            category: Goal category: sleep, energy, stress, exercise or nutrition
                (fitness, weight and diet are accepted aliases).
            title: Optional free-text description of the goal.
        """
        normalized = normalize_goal_categories([category], bank)
        if not normalized or not bank.goal_questions(normalized[0]):
            return json.dumps({
                "status": "error",
                "message": f"Unknown goal category {category!r}.",
                "valid_categories": sorted(bank.goals),
            })

        goal_id = repository.add_goal(user_id, normalized[0], title=title)
        logger.info("Goal %s (%s) set for %s", goal_id, normalized[0], user_id)
        return json.dumps({
            "status": "saved",
            "goal_id": goal_id,
            "category": normalized[0],
            "title": title,
        })

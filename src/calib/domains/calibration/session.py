"""Calibration session — one user's pass through today's questions.

Steps only move forward (welcome -> questions -> analyzing -> result) except
through an explicit ``reset()``. Submission runs at most once per session:
the in-flight marker (tied to the current generation, so a reset frees it
for the next pass) is checked and set before the first ``await``, so a
concurrent duplicate is dropped rather than queued.

Persistence failures never abort the session. The result is always built
from locally computed values; ``saved_to_cloud`` is False when any write
(or the window read) failed.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Literal, Mapping

from calib.domains.calibration.connectors import CalibrationStore, Clock
from calib.domains.calibration.domain_logic.calibration_models import (
    DEFAULT_MAX_QUESTIONS,
    Q_SAFETY,
    WINDOW_DAYS,
    CalibrationQuestion,
    DailyCalibrationResult,
    DailyScore,
    FrequencyDecision,
    QuestionBank,
    StabilityWindow,
)
from calib.domains.calibration.domain_logic.frequency_policy import apply_decision, decide
from calib.domains.calibration.domain_logic.question_selector import select
from calib.domains.calibration.domain_logic.scoring import (
    is_safety_triggered,
    score,
    trigger_full_scale,
)
from calib.domains.calibration.domain_logic.stability import analyze, replace_day

logger = logging.getLogger(__name__)

Step = Literal["welcome", "questions", "analyzing", "result"]


class SessionStateError(Exception):
    """Raised when an operation is not valid in the session's current step."""


class CalibrationSession:
    """State machine for a single calibration interaction.

    Usage::

        session = CalibrationSession("user-1", store, clock=SystemClock(), bank=bank)
        await session.start()
        while session.step == "questions":
            question = session.current_question
            await session.answer(question.id, value)
        session.result.daily_index
    """

    def __init__(
        self,
        user_id: str,
        store: CalibrationStore,
        *,
        clock: Clock,
        bank: QuestionBank,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._clock = clock
        self._bank = bank
        self._max_questions = max_questions

        self.step: Step = "welcome"
        self.questions: list[CalibrationQuestion] = []
        self.current_index = 0
        self.answers: dict[str, int] = {}
        self.result: DailyCalibrationResult | None = None
        self.is_loading = False

        # Generation whose submission is in flight; None when idle
        self._submitting_generation: int | None = None
        # Bumped by start()/reset() so late async work from an older pass is dropped
        self._generation = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def current_question(self) -> CalibrationQuestion | None:
        if self.step != "questions" or self.current_index >= len(self.questions):
            return None
        return self.questions[self.current_index]

    @property
    def progress_percent(self) -> float:
        if not self.questions:
            return 0.0
        return (self.current_index + 1) / len(self.questions) * 100

    @property
    def is_submitting(self) -> bool:
        return self._submitting_generation == self._generation

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Show the base questions, then append adaptive ones.

        Raises:
            SessionStateError: If the session is not at ``welcome``.
        """
        if self.step != "welcome":
            raise SessionStateError(f"Cannot start a session in step {self.step!r}; reset() first")

        self._generation += 1
        generation = self._generation

        self.questions = list(self._bank.base)
        self.current_index = 0
        self.answers = {}
        self.result = None
        self.step = "questions"
        self.is_loading = True

        try:
            goals = await self._store.get_goal_categories(self.user_id)
            streak = await self._store.get_stable_streak(self.user_id)
        except Exception:
            logger.warning(
                "Could not load adaptive inputs for %s; using base questions only",
                self.user_id,
                exc_info=True,
            )
            goals, streak = [], 0

        if generation != self._generation or self.step != "questions":
            return

        # select() starts with the base set, so answered indices keep their questions
        self.questions = select(self._bank, goals, streak, self._max_questions)
        self.is_loading = False
        logger.info(
            "Calibration started for %s: %d questions (%d adaptive)",
            self.user_id,
            len(self.questions),
            len(self.questions) - len(self._bank.base),
        )

    async def answer(self, question_id: str, value: int) -> DailyCalibrationResult | None:
        """Record an answer and advance; submit after the last question.

        Returns:
            The result when this call ran the submission, else None. Calls
            made while a submission is in flight, or outside the
            ``questions`` step, are ignored.
        """
        if self.is_submitting or self.step != "questions":
            logger.debug("Ignoring answer to %s in step %s", question_id, self.step)
            return None

        self.answers[question_id] = int(value)
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1
            return None
        return await self._run_submission()

    async def submit_all(self, answers: Mapping[str, int]) -> DailyCalibrationResult | None:
        """Record a whole answer set at once and submit.

        For callers without a question-by-question UI. Unanswered questions
        are simply absent from the scored set.
        """
        if self.is_submitting or self.step != "questions":
            logger.debug("Ignoring bulk submission in step %s", self.step)
            return None

        self.answers.update({qid: int(v) for qid, v in answers.items()})
        self.current_index = max(len(self.questions) - 1, 0)
        return await self._run_submission()

    def reset(self) -> None:
        """Return to ``welcome``, discarding answers and any result."""
        self._generation += 1
        self.step = "welcome"
        self.questions = []
        self.current_index = 0
        self.answers = {}
        self.result = None
        self.is_loading = False

    # ------------------------------------------------------------------
    # Submission pipeline
    # ------------------------------------------------------------------

    async def _run_submission(self) -> DailyCalibrationResult:
        generation = self._generation
        self._submitting_generation = generation
        self.step = "analyzing"
        self.is_loading = True
        try:
            result = await self._submit(dict(self.answers))
        finally:
            if self._submitting_generation == generation:
                self._submitting_generation = None
            if generation == self._generation:
                self.is_loading = False

        if generation == self._generation:
            self.result = result
            self.step = "result"
        else:
            logger.info("Session for %s was reset during submission; result dropped", self.user_id)
        return result

    async def _submit(self, answers: dict[str, int]) -> DailyCalibrationResult:
        now = self._clock.now()
        today = self._clock.today()
        daily = score(answers, date=today.isoformat())
        full_scale = trigger_full_scale(daily)
        safety = is_safety_triggered(answers)

        saved = True
        try:
            await self._store.save_responses(self.user_id, today, answers, now)
        except Exception:
            logger.exception("Failed to save responses for %s", self.user_id)
            saved = False

        try:
            await self._store.save_daily_summary(self.user_id, today, answers, daily, now)
        except Exception:
            logger.exception("Failed to save daily summary for %s", self.user_id)
            saved = False

        if full_scale is not None:
            try:
                await self._store.log_scale_trigger(
                    self.user_id,
                    short_scale="GAD2",
                    short_score=daily.anxiety_score,
                    full_scale=full_scale,
                )
            except Exception:
                logger.exception("Failed to log scale trigger for %s", self.user_id)
                saved = False

        if safety:
            logger.warning("Safety question answered positively by %s", self.user_id)
            try:
                await self._store.log_safety_event(
                    self.user_id,
                    trigger_source="daily_calibration",
                    trigger_value=answers[Q_SAFETY],
                )
            except Exception:
                logger.exception("Failed to log safety event for %s", self.user_id)
                saved = False

        stability, decision, cycle_saved = await self._evaluate(today, now, daily)

        result = DailyCalibrationResult(
            daily_index=daily.daily_index,
            anxiety_score=daily.anxiety_score,
            sleep_duration_score=daily.sleep_duration_score,
            sleep_quality_score=daily.sleep_quality_score,
            stress_score=daily.stress_score,
            trigger_full_scale=full_scale,
            safety_triggered=safety,
            stability=stability,
            decision=decision,
            saved_to_cloud=saved and cycle_saved,
        )
        logger.info(
            "Calibration for %s: index=%d cadence=%s saved=%s",
            self.user_id,
            result.daily_index,
            decision.cadence,
            result.saved_to_cloud,
        )
        return result

    async def _evaluate(
        self, today: date, now: datetime, daily: DailyScore
    ) -> tuple[StabilityWindow, FrequencyDecision, bool]:
        """Analyze the trailing window, decide cadence, commit streak + cadence.

        A failed read gives an empty stored window and skips the commit, so a
        transient error never resets the stored streak.
        """
        start = today - timedelta(days=WINDOW_DAYS - 1)
        try:
            window = await self._store.fetch_window(self.user_id, start, today)
            prior_streak = await self._store.get_stable_streak(self.user_id)
            current_state = await self._store.get_frequency_state(self.user_id)
            read_ok = True
        except Exception:
            logger.exception("Failed to read calibration window for %s", self.user_id)
            window, prior_streak, current_state, read_ok = [], 0, None, False

        # The locally scored day always stands in for today's stored copy
        window = replace_day(window, daily)
        stability = analyze(window, prior_streak)
        decision = decide(stability)
        if not read_ok:
            return stability, decision, False

        new_state = apply_decision(current_state, decision, now)
        # A no-op decision leaves the stored cadence in force
        decision = FrequencyDecision(
            cadence=new_state.cadence, reason=new_state.reason or decision.reason
        )
        try:
            await self._store.commit_cycle(
                self.user_id,
                streak=stability.consecutive_stable_days,
                state=None if new_state is current_state else new_state,
                calibrated_at=now,
            )
        except Exception:
            logger.exception("Failed to save calibration cycle for %s", self.user_id)
            return stability, decision, False
        return stability, decision, True

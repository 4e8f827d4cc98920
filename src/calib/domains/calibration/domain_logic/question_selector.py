"""Adaptive question selection.

The fixed base set is always asked, in order. Goal questions and weekly
"evolution" reflection prompts are appended after it, never inserted before
it, until the cap is reached.
"""

from __future__ import annotations

from typing import Iterable

from calib.domains.calibration.domain_logic.calibration_models import (
    DEFAULT_MAX_QUESTIONS,
    EVOLUTION_TRIGGER_DAYS,
    CalibrationQuestion,
    QuestionBank,
)


def normalize_goal_categories(categories: Iterable[str], bank: QuestionBank) -> list[str]:
    """Lower-case, alias-resolve and de-duplicate goal categories, keeping first-seen order."""
    seen: list[str] = []
    for raw in categories:
        if not raw or not raw.strip():
            continue
        key = raw.strip().lower()
        key = bank.aliases.get(key, key)
        if key not in seen:
            seen.append(key)
    return seen


def should_evolve(consecutive_stable_days: int) -> bool:
    """True on weekly stable-streak milestones (7, 14, 21, ...)."""
    return consecutive_stable_days > 0 and consecutive_stable_days % EVOLUTION_TRIGGER_DAYS == 0


def evolution_count(consecutive_stable_days: int, bank_size: int) -> int:
    """How many evolution prompts to inject at a milestone."""
    level = max(1, consecutive_stable_days // EVOLUTION_TRIGGER_DAYS + 1)
    return min(level, bank_size)


def adaptive_candidates(
    bank: QuestionBank,
    goal_categories: Iterable[str],
    consecutive_stable_days: int,
) -> list[CalibrationQuestion]:
    """Adaptive questions in selection order, before any capping."""
    candidates: list[CalibrationQuestion] = []
    for category in normalize_goal_categories(goal_categories, bank):
        goal_questions = bank.goal_questions(category)
        if goal_questions:
            candidates.append(goal_questions[0])

    if should_evolve(consecutive_stable_days):
        count = evolution_count(consecutive_stable_days, len(bank.evolution))
        candidates.extend(bank.evolution[:count])
    return candidates


def select(
    bank: QuestionBank,
    goal_categories: Iterable[str] = (),
    consecutive_stable_days: int = 0,
    max_total: int = DEFAULT_MAX_QUESTIONS,
) -> list[CalibrationQuestion]:
    """Build today's ordered question list.

    Args:
        bank: Question catalog.
        goal_categories: Active goal categories (any case, duplicates allowed).
        consecutive_stable_days: Current stable streak.
        max_total: Upper bound on adaptive additions. Base questions are
            never dropped, so the result only exceeds this when the base set
            alone does.

    Returns:
        Base questions followed by the adaptive questions that fit.
    """
    questions = list(bank.base)
    seen = {q.id for q in questions}

    for question in adaptive_candidates(bank, goal_categories, consecutive_stable_days):
        if len(questions) >= max_total:
            break
        if question.id in seen:
            continue
        questions.append(question)
        seen.add(question.id)
    return questions

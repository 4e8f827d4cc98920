"""Question bank loader — reads the YAML catalog from disk."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from calib.domains.calibration.domain_logic.calibration_models import (
    CalibrationQuestion,
    QuestionBank,
    QuestionOption,
)

logger = logging.getLogger(__name__)

DEFAULT_BANK_PATH = Path(__file__).resolve().parent / "question_bank.yaml"

_QUESTION_TYPES = {"single", "slider"}


class QuestionBankError(Exception):
    """Raised when a question bank file is missing or malformed."""


def _parse_question(data: dict[str, Any], where: str) -> CalibrationQuestion:
    try:
        qid = str(data["id"])
        qtype = data["type"]
    except (KeyError, TypeError) as exc:
        raise QuestionBankError(f"{where}: question is missing {exc}") from exc

    if qtype not in _QUESTION_TYPES:
        raise QuestionBankError(f"{where}: question {qid!r} has unknown type {qtype!r}")

    options = tuple(
        QuestionOption(value=int(o["value"]), label=str(o["label"]))
        for o in data.get("options") or []
    )
    if qtype == "single" and not options:
        raise QuestionBankError(f"{where}: single-choice question {qid!r} has no options")
    if qtype == "slider" and (data.get("min") is None or data.get("max") is None):
        raise QuestionBankError(f"{where}: slider question {qid!r} needs min and max")

    return CalibrationQuestion(
        id=qid,
        text=str(data.get("text", "")).strip(),
        type=qtype,
        category=str(data.get("category", "")),
        options=options,
        min=data.get("min"),
        max=data.get("max"),
        is_safety_question=bool(data.get("is_safety_question", False)),
    )


def _parse_list(items: Any, where: str) -> tuple[CalibrationQuestion, ...]:
    if items is None:
        return ()
    if not isinstance(items, list):
        raise QuestionBankError(f"{where}: expected a list of questions")
    questions = tuple(_parse_question(item, where) for item in items)
    ids = [q.id for q in questions]
    duplicates = {qid for qid in ids if ids.count(qid) > 1}
    if duplicates:
        raise QuestionBankError(f"{where}: duplicate question ids {sorted(duplicates)}")
    return questions


def parse_question_bank(data: dict[str, Any]) -> QuestionBank:
    """Build a QuestionBank from an already-parsed YAML mapping."""
    if not isinstance(data, dict):
        raise QuestionBankError("Question bank must be a mapping")

    base = _parse_list(data.get("base"), "base")
    if not base:
        raise QuestionBankError("Question bank has no base questions")

    goals = {
        str(category).strip().lower(): _parse_list(items, f"goals.{category}")
        for category, items in (data.get("goals") or {}).items()
    }
    aliases = {
        str(alias).strip().lower(): str(target).strip().lower()
        for alias, target in (data.get("aliases") or {}).items()
    }

    return QuestionBank(
        base=base,
        goals=MappingProxyType(goals),
        evolution=_parse_list(data.get("evolution"), "evolution"),
        aliases=MappingProxyType(aliases),
        version=str(data.get("version", "")),
    )


def load_question_bank(path: str | Path | None = None) -> QuestionBank:
    """Load a question bank YAML file (the packaged catalog by default)."""
    path = Path(path) if path else DEFAULT_BANK_PATH
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise QuestionBankError(f"Cannot read question bank {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise QuestionBankError(f"Invalid YAML in {path}: {exc}") from exc

    bank = parse_question_bank(data)
    logger.info(
        "Loaded question bank from %s (%d base, %d goal banks, %d evolution)",
        path,
        len(bank.base),
        len(bank.goals),
        len(bank.evolution),
    )
    return bank


@lru_cache(maxsize=1)
def default_question_bank() -> QuestionBank:
    """The packaged catalog, loaded once."""
    return load_question_bank(DEFAULT_BANK_PATH)

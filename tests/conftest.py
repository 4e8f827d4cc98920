"""Shared test fixtures for calibration tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("QUESTION_BANK_PATH", "")
    monkeypatch.setenv("USER_TIMEZONE", "UTC")

# Allow running tests without `pip install -e .` by making `src/` importable,
# and `tests/` for the shared helpers module.
_TESTS_DIR = Path(__file__).resolve().parent
_SRC_DIR = _TESTS_DIR.parent / "src"
for _path in (_SRC_DIR, _TESTS_DIR):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from calib.domains.calibration.catalog.loader import default_question_bank  # noqa: E402
from calib.domains.calibration.domain_logic.calibration_models import QuestionBank  # noqa: E402
from helpers import FakeStore, FixedClock  # noqa: E402


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def question_bank() -> QuestionBank:
    """The packaged question catalog."""
    return default_question_bank()


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def calibration_db():
    """Create an in-memory CalibrationDatabase for testing."""
    from calib.core.storage.database import CalibrationDatabase

    db = CalibrationDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def answer_encryptor():
    """Create an AnswerEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from calib.core.storage.encryption import AnswerEncryptor

    return AnswerEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def calibration_repository(calibration_db, answer_encryptor):
    """Create a CalibrationRepository backed by in-memory SQLite."""
    from calib.core.storage.repository import CalibrationRepository

    return CalibrationRepository(calibration_db, answer_encryptor)


@pytest.fixture
def audit_logger(calibration_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from calib.core.audit.logger import AuditLogger

    return AuditLogger(calibration_db)


@pytest.fixture
def sqlite_store(calibration_repository, audit_logger):
    """Create a SQLiteCalibrationStore with auditing enabled."""
    from calib.domains.calibration.connectors.sqlite_store import SQLiteCalibrationStore

    return SQLiteCalibrationStore(calibration_repository, audit_logger)

"""SQLite database management for the calibration data bank.

Handles connection lifecycle, schema creation, and migrations.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per (user, scale, question, day); re-submissions overwrite
CREATE TABLE IF NOT EXISTS scale_responses (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    scale_id      TEXT NOT NULL,
    question_id   TEXT NOT NULL,
    answer_enc    TEXT NOT NULL,
    source        TEXT NOT NULL,
    response_date TEXT NOT NULL,
    created_at    TEXT NOT NULL,
    UNIQUE (user_id, scale_id, question_id, response_date)
);

-- Derived per-day summary, recomputable from scale_responses
CREATE TABLE IF NOT EXISTS daily_wellness_logs (
    id                     TEXT PRIMARY KEY,
    user_id                TEXT NOT NULL,
    log_date               TEXT NOT NULL,
    daily_index            INTEGER NOT NULL,
    anxiety_score          INTEGER NOT NULL,
    sleep_duration_minutes INTEGER,
    sleep_quality          TEXT,
    stress_level           INTEGER,
    updated_at             TEXT NOT NULL,
    UNIQUE (user_id, log_date)
);

CREATE TABLE IF NOT EXISTS assessment_preferences (
    user_id                TEXT PRIMARY KEY,
    daily_frequency        TEXT NOT NULL DEFAULT 'daily',
    daily_frequency_reason TEXT,
    last_frequency_change  TEXT
);

CREATE TABLE IF NOT EXISTS calibration_profiles (
    user_id                TEXT PRIMARY KEY,
    last_daily_calibration TEXT,
    daily_stability_streak INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS phase_goals (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL,
    category   TEXT NOT NULL,
    title      TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_responses_user_date ON scale_responses(user_id, response_date);
CREATE INDEX IF NOT EXISTS idx_logs_user_date      ON daily_wellness_logs(user_id, log_date);
CREATE INDEX IF NOT EXISTS idx_goals_user          ON phase_goals(user_id, created_at);
"""

# ---------------------------------------------------------------------------
# V2: Append-only audit log (scale triggers, safety events, tool calls)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    user_id         TEXT,
    tool_name       TEXT,
    tool_input_hash TEXT,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_user      ON audit_log(user_id);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class CalibrationDatabase:
    """SQLite database manager for the calibration data bank.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = CalibrationDatabase(":memory:")
        db.initialize()
        conn = db.connection
        # ... use connection ...
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        """Initialize database manager.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
        """
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            DatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Create the database connection and ensure schema exists.

        Idempotent: safe to call multiple times.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._ensure_schema()
        logger.info("Calibration database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist and apply migrations."""
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row[0] is not None else 0

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: audit_log table")

        if current_version < SCHEMA_VERSION:
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info(
                "Schema updated from version %d to %d", current_version, SCHEMA_VERSION
            )

    def get_schema_version(self) -> int:
        """Return the current schema version."""
        cursor = self.connection.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Calibration database closed")

    def __enter__(self) -> CalibrationDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

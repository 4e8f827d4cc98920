"""Calibration data repository — upserts and windowed reads for the data bank.

The repository mediates between stored rows and the SQLite database, using
AnswerEncryptor to encrypt raw answer codes. Every write that can be retried
by a caller is an idempotent upsert keyed by (user, date, question) or
(user, date), so at-least-once delivery never duplicates rows.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from calib.core.storage.database import CalibrationDatabase
from calib.core.storage.encryption import AnswerEncryptor
from calib.core.storage.models import (
    CalibrationProfile,
    DailyWellnessLog,
    FrequencyPreferences,
    PhaseGoal,
    StoredResponse,
)

logger = logging.getLogger(__name__)

# Tables keyed by user_id; table names are constants, never user input
_USER_TABLES = (
    "scale_responses",
    "daily_wellness_logs",
    "assessment_preferences",
    "calibration_profiles",
    "phase_goals",
)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class CalibrationRepository:
    """Repository for per-question responses, daily summaries and schedule state.

    Usage::

        db = CalibrationDatabase(":memory:")
        db.initialize()
        repo = CalibrationRepository(db, AnswerEncryptor(key))

        repo.upsert_responses("user-1", "2026-03-01", {"q_anxiety_1": 1})
        rows = repo.get_responses("user-1", since="2026-02-23")
    """

    def __init__(self, database: CalibrationDatabase, encryptor: AnswerEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Raw responses
    # ------------------------------------------------------------------

    def upsert_responses(
        self,
        user_id: str,
        response_date: str,
        answers: dict[str, int],
        *,
        created_at: str | None = None,
        scale_id: str = "DAILY",
        source: str = "daily",
    ) -> int:
        """Insert or overwrite one row per answered question.

        Args:
            user_id: Owner of the answers.
            response_date: User-local calendar date (YYYY-MM-DD).
            answers: Mapping of question id to answer code.
            created_at: ISO 8601 write time. Defaults to now (UTC).

        Returns:
            Number of rows written.
        """
        if not answers:
            return 0

        conn = self._db.connection
        now = created_at or self._now_iso()
        try:
            conn.executemany(
                """INSERT INTO scale_responses
                   (id, user_id, scale_id, question_id, answer_enc, source, response_date, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, scale_id, question_id, response_date) DO UPDATE SET
                       answer_enc = excluded.answer_enc,
                       source = excluded.source,
                       created_at = excluded.created_at""",
                [
                    (
                        self._new_id(),
                        user_id,
                        scale_id,
                        question_id,
                        self._enc.encrypt(int(value)),
                        source,
                        response_date,
                        now,
                    )
                    for question_id, value in answers.items()
                ],
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to save responses: {exc}") from exc

        logger.info(
            "Saved %d responses for %s on %s", len(answers), user_id, response_date
        )
        return len(answers)

    def get_responses(
        self,
        user_id: str,
        *,
        since: str,
        until: str | None = None,
        source: str = "daily",
    ) -> list[StoredResponse]:
        """Get decrypted answer rows for a date range.

        Args:
            user_id: Owner of the answers.
            since: Inclusive lower bound on ``response_date`` (YYYY-MM-DD).
            until: Optional inclusive upper bound on ``response_date``.
            source: Response source filter.

        Returns:
            Rows ordered by response date, then write time.
        """
        conditions = ["user_id = ?", "source = ?", "response_date >= ?"]
        params: list[Any] = [user_id, source, since]
        if until:
            conditions.append("response_date <= ?")
            params.append(until)

        query = (
            "SELECT user_id, scale_id, question_id, answer_enc, source, response_date, created_at"
            f" FROM scale_responses WHERE {' AND '.join(conditions)}"
            " ORDER BY response_date ASC, created_at ASC"
        )
        rows = self._db.connection.execute(query, params).fetchall()
        return [
            StoredResponse(
                user_id=row["user_id"],
                question_id=row["question_id"],
                answer_value=int(self._enc.decrypt(row["answer_enc"])),
                response_date=row["response_date"],
                created_at=row["created_at"],
                scale_id=row["scale_id"],
                source=row["source"],
            )
            for row in rows
        ]

    def count_responses(self, user_id: str) -> int:
        """Return the number of stored answer rows for a user."""
        row = self._db.connection.execute(
            "SELECT COUNT(*) FROM scale_responses WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Daily summary
    # ------------------------------------------------------------------

    def upsert_wellness_log(self, log: DailyWellnessLog) -> str:
        """Insert or overwrite the derived summary for (user, date).

        Returns:
            The row ID (the existing one when the row already existed).
        """
        conn = self._db.connection
        updated_at = log.updated_at or self._now_iso()
        try:
            conn.execute(
                """INSERT INTO daily_wellness_logs
                   (id, user_id, log_date, daily_index, anxiety_score,
                    sleep_duration_minutes, sleep_quality, stress_level, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, log_date) DO UPDATE SET
                       daily_index = excluded.daily_index,
                       anxiety_score = excluded.anxiety_score,
                       sleep_duration_minutes = excluded.sleep_duration_minutes,
                       sleep_quality = excluded.sleep_quality,
                       stress_level = excluded.stress_level,
                       updated_at = excluded.updated_at""",
                (
                    log.id or self._new_id(),
                    log.user_id,
                    log.log_date,
                    log.daily_index,
                    log.anxiety_score,
                    log.sleep_duration_minutes,
                    log.sleep_quality,
                    log.stress_level,
                    updated_at,
                ),
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to save daily summary: {exc}") from exc

        row = conn.execute(
            "SELECT id FROM daily_wellness_logs WHERE user_id = ? AND log_date = ?",
            (log.user_id, log.log_date),
        ).fetchone()
        return row[0]

    def get_wellness_log(self, user_id: str, log_date: str) -> DailyWellnessLog | None:
        """Get the summary row for one day, or None."""
        row = self._db.connection.execute(
            "SELECT * FROM daily_wellness_logs WHERE user_id = ? AND log_date = ?",
            (user_id, log_date),
        ).fetchone()
        if row is None:
            return None
        return DailyWellnessLog(
            id=row["id"],
            user_id=row["user_id"],
            log_date=row["log_date"],
            daily_index=row["daily_index"],
            anxiety_score=row["anxiety_score"],
            sleep_duration_minutes=row["sleep_duration_minutes"],
            sleep_quality=row["sleep_quality"],
            stress_level=row["stress_level"],
            updated_at=row["updated_at"],
        )

    def count_wellness_logs(self, user_id: str) -> int:
        """Return the number of summary rows for a user."""
        row = self._db.connection.execute(
            "SELECT COUNT(*) FROM daily_wellness_logs WHERE user_id = ?", (user_id,)
        ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Schedule state (preferences + profile)
    # ------------------------------------------------------------------

    def get_preferences(self, user_id: str) -> FrequencyPreferences | None:
        """Get the stored cadence for a user, or None if never set."""
        row = self._db.connection.execute(
            "SELECT * FROM assessment_preferences WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return FrequencyPreferences(
            user_id=row["user_id"],
            daily_frequency=row["daily_frequency"],
            daily_frequency_reason=row["daily_frequency_reason"],
            last_frequency_change=row["last_frequency_change"],
        )

    def get_profile(self, user_id: str) -> CalibrationProfile | None:
        """Get the stable streak and last calibration time, or None."""
        row = self._db.connection.execute(
            "SELECT * FROM calibration_profiles WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return CalibrationProfile(
            user_id=row["user_id"],
            last_daily_calibration=row["last_daily_calibration"],
            daily_stability_streak=row["daily_stability_streak"] or 0,
        )

    def save_cycle(
        self,
        user_id: str,
        *,
        streak: int,
        calibrated_at: str,
        preferences: FrequencyPreferences | None = None,
    ) -> None:
        """Persist one calibration cycle's streak and (optionally) cadence.

        Both writes share a single transaction: either the profile and the
        preferences are both updated or neither is.
        """
        conn = self._db.connection
        try:
            self._write_profile(conn, user_id, streak, calibrated_at)
            if preferences is not None:
                self._write_preferences(conn, preferences)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to save calibration cycle: {exc}") from exc

        logger.info(
            "Saved calibration cycle for %s (streak=%d, cadence_changed=%s)",
            user_id,
            streak,
            preferences is not None,
        )

    def reset_frequency(self, preferences: FrequencyPreferences) -> None:
        """Apply a user-chosen cadence and zero the stable streak atomically."""
        conn = self._db.connection
        try:
            self._write_preferences(conn, preferences)
            conn.execute(
                """INSERT INTO calibration_profiles (user_id, daily_stability_streak)
                   VALUES (?, 0)
                   ON CONFLICT(user_id) DO UPDATE SET daily_stability_streak = 0""",
                (preferences.user_id,),
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to reset frequency: {exc}") from exc

    @staticmethod
    def _write_profile(
        conn: sqlite3.Connection, user_id: str, streak: int, calibrated_at: str
    ) -> None:
        conn.execute(
            """INSERT INTO calibration_profiles
               (user_id, last_daily_calibration, daily_stability_streak)
               VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   last_daily_calibration = excluded.last_daily_calibration,
                   daily_stability_streak = excluded.daily_stability_streak""",
            (user_id, calibrated_at, streak),
        )

    @staticmethod
    def _write_preferences(conn: sqlite3.Connection, prefs: FrequencyPreferences) -> None:
        conn.execute(
            """INSERT INTO assessment_preferences
               (user_id, daily_frequency, daily_frequency_reason, last_frequency_change)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   daily_frequency = excluded.daily_frequency,
                   daily_frequency_reason = excluded.daily_frequency_reason,
                   last_frequency_change = excluded.last_frequency_change""",
            (
                prefs.user_id,
                prefs.daily_frequency,
                prefs.daily_frequency_reason,
                prefs.last_frequency_change,
            ),
        )

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def add_goal(
        self,
        user_id: str,
        category: str,
        *,
        title: str = "",
        created_at: str | None = None,
    ) -> str:
        """Record an active goal. Returns the goal ID."""
        goal_id = self._new_id()
        conn = self._db.connection
        conn.execute(
            "INSERT INTO phase_goals (id, user_id, category, title, created_at) VALUES (?, ?, ?, ?, ?)",
            (goal_id, user_id, category, title, created_at or self._now_iso()),
        )
        conn.commit()
        return goal_id

    def get_recent_goals(self, user_id: str, *, limit: int = 3) -> list[PhaseGoal]:
        """Get the user's most recent goals, newest first."""
        rows = self._db.connection.execute(
            """SELECT id, user_id, category, title, created_at FROM phase_goals
               WHERE user_id = ? ORDER BY created_at DESC LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [
            PhaseGoal(
                id=row["id"],
                user_id=row["user_id"],
                category=row["category"],
                title=row["title"] or "",
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Deletion (right to deletion)
    # ------------------------------------------------------------------

    def delete_user_data(self, user_id: str) -> int:
        """Delete every calibration record for a user.

        Audit entries are kept: they are append-only and hold no answers.

        Returns:
            Number of answer rows deleted.
        """
        conn = self._db.connection
        count = self.count_responses(user_id)
        try:
            for table in _USER_TABLES:
                conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RepositoryError(f"Failed to delete data for {user_id}: {exc}") from exc

        logger.warning("Deleted all calibration data for %s: %d responses removed", user_id, count)
        return count

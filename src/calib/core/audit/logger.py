"""Audit logger — append-only trail of safety-relevant calibration events.

Unlike the upserted calibration tables, the audit log is never overwritten:
every scale trigger, safety event, cadence change, tool call and deletion
gets its own row. No raw answers are stored here:

* ``tool_input_hash`` — SHA-256 of canonical JSON, never the input itself.
* ``metadata``        — scores and reason codes only.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from calib.core.storage.database import CalibrationDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str  # 'scale_trigger' | 'safety_event' | 'frequency_change' | 'tool_invocation' | 'data_delete'
    user_id: str | None = None
    tool_name: str = ""
    tool_input_hash: str = ""
    duration_ms: float | None = None
    status: str = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately. A failed write is logged and
    reported as an empty event ID; it never raises into the caller.

    Usage::

        audit = AuditLogger(db)
        audit.log_scale_trigger("user-1", short_scale="GAD2", short_score=4, full_scale="GAD7")
    """

    def __init__(self, database: CalibrationDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Append an audit event and return its UUID ("" on failure)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), ensure_ascii=False)
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, user_id, tool_name, tool_input_hash,
                    duration_ms, status, error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.user_id,
                    event.tool_name or None,
                    event.tool_input_hash or None,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event %s — event lost", event.action)
            return ""

        return event_id

    def log_scale_trigger(
        self,
        user_id: str,
        *,
        short_scale: str,
        short_score: int,
        full_scale: str,
        trigger_reason: str = "score >= 3",
        confidence: float = 0.85,
    ) -> str:
        """Record that a short screener recommends a full follow-up instrument."""
        return self.log_event(AuditEvent(
            action="scale_trigger",
            user_id=user_id,
            metadata={
                "short_scale": short_scale,
                "short_score": short_score,
                "triggered_full_scale": full_scale,
                "trigger_reason": trigger_reason,
                "confidence": confidence,
            },
        ))

    def log_safety_event(
        self,
        user_id: str,
        *,
        trigger_source: str,
        trigger_value: int,
        actions_taken: list[str] | None = None,
    ) -> str:
        """Record that a high-risk answer was given."""
        return self.log_event(AuditEvent(
            action="safety_event",
            user_id=user_id,
            metadata={
                "trigger_source": trigger_source,
                "trigger_value": trigger_value,
                "actions_taken": actions_taken or [
                    "show_safety_message",
                    "show_crisis_resources",
                ],
            },
        ))

    def log_frequency_change(
        self,
        user_id: str,
        *,
        cadence: str,
        reason: str,
        previous_cadence: str | None = None,
    ) -> str:
        """Record a cadence change made by the policy or by the user."""
        return self.log_event(AuditEvent(
            action="frequency_change",
            user_id=user_id,
            metadata={
                "cadence": cadence,
                "reason": reason,
                "previous_cadence": previous_cadence,
            },
        ))

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a tool invocation. ``tool_input`` is hashed, never stored."""
        return self.log_event(AuditEvent(
            action="tool_invocation",
            user_id=user_id,
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        user_id: str,
        *,
        tool_name: str = "",
        count: int = 0,
    ) -> str:
        """Record a user data deletion."""
        return self.log_event(AuditEvent(
            action="data_delete",
            user_id=user_id,
            tool_name=tool_name,
            metadata={"records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first.

        ``metadata_json`` is decoded into a ``metadata`` dict.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        events = []
        for row in self._db.connection.execute(query, params).fetchall():
            event = dict(row)
            raw = event.pop("metadata_json", None)
            event["metadata"] = json.loads(raw) if raw else {}
            events.append(event)
        return events

    def count_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
    ) -> int:
        """Count audit events matching the optional filters."""
        conditions: list[str] = []
        params: list[Any] = []
        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        row = self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{where}", params
        ).fetchone()
        return row[0]

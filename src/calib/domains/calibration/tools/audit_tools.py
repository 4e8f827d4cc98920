"""MCP tools for viewing the audit trail.

The audit trail holds scale triggers, safety events, cadence changes and
tool calls. It never contains raw answers: tool inputs are hashed and
metadata is limited to scores and reason codes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from calib.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        user_id: str = "",
        days: int = 30,
    ) -> str:
        """View recent audit events and safety-relevant counts.

        Args:
            user_id: Restrict to one user (default: all users).
            days: Number of days to look back (default: 30).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        user_filter = user_id or None

        recent_events = audit_logger.get_events(user_id=user_filter, since=since, limit=20)
        display_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "user_id": event.get("user_id"),
                "tool_name": event.get("tool_name"),
                "status": event.get("status"),
                "metadata": event.get("metadata"),
            }
            for event in recent_events
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(user_id=user_filter, since=since),
            "scale_triggers": audit_logger.count_events(
                action="scale_trigger", user_id=user_filter, since=since
            ),
            "safety_events": audit_logger.count_events(
                action="safety_event", user_id=user_filter, since=since
            ),
            "frequency_changes": audit_logger.count_events(
                action="frequency_change", user_id=user_filter, since=since
            ),
            "recent_events": display_events,
        }, indent=2, ensure_ascii=False)

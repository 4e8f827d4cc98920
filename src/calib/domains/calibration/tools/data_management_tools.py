"""MCP tools for calibration data deletion.

Deleting a user's history removes responses, daily summaries, schedule
state and goals. The deletion itself is audit-logged; earlier audit entries
are kept.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from calib.core.audit.logger import AuditLogger
    from calib.core.storage.repository import CalibrationRepository

logger = logging.getLogger(__name__)


def register_data_management_tools(
    mcp: FastMCP,
    repository: CalibrationRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def delete_calibration_history(
        ctx: Context,
        user_id: str,
        confirm: str = "",
    ) -> str:
        """Permanently delete a user's calibration history.

        Args:
            user_id: The user whose data is deleted.
            confirm: Must be exactly 'DELETE_ALL' to proceed.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete calibration history, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        start_time = time.monotonic()
        count = repository.delete_user_data(user_id)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                user_id, tool_name="delete_calibration_history", count=count
            )

        return json.dumps({
            "status": "deleted",
            "user_id": user_id,
            "responses_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
        })

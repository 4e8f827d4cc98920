"""Calibration MCP server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from calib.core.audit.logger import AuditLogger
from calib.core.config.settings import get_settings
from calib.core.storage.database import CalibrationDatabase
from calib.core.storage.encryption import AnswerEncryptor, EncryptionError
from calib.core.storage.repository import CalibrationRepository
from calib.domains.calibration.catalog.loader import default_question_bank, load_question_bank
from calib.domains.calibration.connectors import Clock
from calib.domains.calibration.connectors.clock import SystemClock
from calib.domains.calibration.connectors.sqlite_store import SQLiteCalibrationStore
from calib.domains.calibration.domain_logic.calibration_models import QuestionBank
from calib.domains.calibration.tools.audit_tools import register_audit_tools
from calib.domains.calibration.tools.calibration_tools import register_calibration_tools
from calib.domains.calibration.tools.data_management_tools import (
    register_data_management_tools,
)

logger = logging.getLogger(__name__)


def create_app(
    *,
    repository_override: CalibrationRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
    clock_override: Clock | None = None,
    bank_override: QuestionBank | None = None,
) -> FastMCP:
    """Create and configure the calibration MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Loads the question bank
    3. Initializes the encrypted storage layer and audit trail
    4. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "Daily Calibration",
        instructions=(
            "Daily wellness calibration server. Serves short daily check-in "
            "questions, scores them into a 0-12 daily index, tracks 7-day "
            "stability and adapts the check-in cadence."
        ),
    )

    # --- Question bank ---
    if bank_override is not None:
        bank = bank_override
    elif settings.question_bank_path:
        bank = load_question_bank(settings.question_bank_path)
    else:
        bank = default_question_bank()
    logger.info(
        "Question bank loaded: %d base, %d goal categories",
        len(bank.base),
        len(bank.goals),
    )

    clock = clock_override or SystemClock(settings.user_timezone)

    # --- Initialize encrypted storage (calibration data bank) ---
    repository: CalibrationRepository | None = None
    audit_logger: AuditLogger | None = audit_logger_override
    if repository_override is not None:
        repository = repository_override
    elif settings.encryption_key:
        try:
            encryptor = AnswerEncryptor(settings.encryption_key)
            calib_db = CalibrationDatabase(settings.db_path)
            calib_db.initialize()
            repository = CalibrationRepository(calib_db, encryptor)
            if audit_logger is None:
                audit_logger = AuditLogger(calib_db)
            logger.info(
                "Calibration data bank initialized: %s (schema v%d)",
                settings.db_path,
                calib_db.get_schema_version(),
            )
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence — calibration tools disabled")
    else:
        logger.info(
            "No ENCRYPTION_KEY configured — running without persistence. "
            "Set ENCRYPTION_KEY to enable calibration tools."
        )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": "Daily Calibration",
            "version": "0.1.0",
            "question_bank_version": bank.version,
            "storage_enabled": repository is not None,
            "audit_enabled": audit_logger is not None,
        }
        return status

    if repository is not None:
        store = SQLiteCalibrationStore(repository, audit_logger)
        register_calibration_tools(
            server,
            store,
            repository,
            clock,
            bank,
            max_questions=settings.max_daily_questions,
            tz=getattr(clock, "tz", None),
            audit_logger=audit_logger,
        )
        register_data_management_tools(server, repository, audit_logger)
        logger.info("Calibration tools registered")

    if audit_logger is not None:
        register_audit_tools(server, audit_logger)
        logger.info("Audit tools registered")

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

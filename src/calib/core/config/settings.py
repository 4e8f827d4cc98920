"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Calibration engine server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: there is no auth layer in front of the tools.
    calib_host: str = "127.0.0.1"
    calib_port: int = 8001
    calib_log_level: str = "info"
    calib_allow_insecure_bind: bool = False

    # Storage (calibration data bank)
    db_path: str = "~/.calib/calibration.db"

    # Encryption
    encryption_key: str = ""

    # Calibration
    user_timezone: str = "UTC"
    max_daily_questions: int = 7
    question_bank_path: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()

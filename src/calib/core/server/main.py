"""Calibration server entry point — ``python -m calib.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from calib.core.config.settings import get_settings
from calib.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the calibration MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.calib_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.calib_allow_insecure_bind and not _is_loopback_host(settings.calib_host):
        raise RuntimeError(
            "Refusing to bind the calibration server to a non-loopback host without an "
            "auth layer. Set CALIB_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting calibration server on %s:%d",
        settings.calib_host,
        settings.calib_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.calib_host,
        port=settings.calib_port,
    )


if __name__ == "__main__":
    run()

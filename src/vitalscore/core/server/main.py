"""Server entry point: ``vitalscore-server`` or ``python -m vitalscore.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from vitalscore.core.config.settings import Settings, get_settings
from vitalscore.core.server.app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def check_bind(settings: Settings) -> None:
    """Refuse a public bind unless explicitly allowed.

    The server has no auth layer. A non-loopback host needs
    INSIGHT_ALLOW_INSECURE_BIND.
    """
    if _is_loopback_host(settings.insight_host):
        return
    if not settings.insight_allow_insecure_bind:
        raise RuntimeError(
            f"Refusing to bind the insight server to non-loopback host "
            f"{settings.insight_host!r} without an auth layer. "
            "Set INSIGHT_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.warning(
        "Serving on non-loopback host %s without authentication", settings.insight_host
    )


def run(settings: Settings | None = None) -> None:
    """Start the insight MCP server with Streamable HTTP transport."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.insight_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    check_bind(settings)
    logger.info(
        "Starting Vitalscore insight server on %s:%d (cache backend: %s)",
        settings.insight_host,
        settings.insight_port,
        settings.cache_backend,
    )

    mcp = create_app(settings_override=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.insight_host,
        port=settings.insight_port,
    )


if __name__ == "__main__":
    run()

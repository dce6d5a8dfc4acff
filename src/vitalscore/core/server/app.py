"""Vitalscore insight MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from vitalscore.core.config.settings import Settings, get_settings
from vitalscore.core.storage.codec import CodecError, ValueCodec
from vitalscore.core.storage.database import CacheDatabase
from vitalscore.core.storage.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLiteKeyValueStore,
)
from vitalscore.core.storage.result_cache import ResultCache
from vitalscore.domains.health.connectors import HealthDataProvider
from vitalscore.domains.health.connectors.providers import (
    CompositeHealthDataProvider,
    MockHealthDataProvider,
    StaticHealthDataProvider,
)
from vitalscore.domains.health.domain_logic.refresh_coordinator import ScoreRefresher
from vitalscore.domains.health.tools.insight_tools import register_insight_tools
from vitalscore.domains.health.tools.narrative_tools import register_narrative_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Vitalscore Insights"
VERSION = "0.1.0"


def _build_store(settings: Settings) -> KeyValueStore:
    if settings.cache_backend == "sqlite":
        database = CacheDatabase(settings.cache_db_path)
        database.initialize()
        logger.info(
            "Result cache persisted to %s (schema v%d)",
            settings.cache_db_path,
            database.get_schema_version(),
        )
        return SQLiteKeyValueStore(database)
    logger.info("Result cache kept in memory")
    return InMemoryKeyValueStore()


def _build_codec(settings: Settings) -> ValueCodec:
    if not settings.encryption_key:
        return ValueCodec()
    try:
        return ValueCodec(settings.encryption_key)
    except CodecError as exc:
        logger.error("Failed to initialize cache encryption: %s", exc)
        logger.warning("Continuing with plaintext cache values")
        return ValueCodec()


def create_app(
    *,
    health_data_provider_override: HealthDataProvider | None = None,
    cache_override: ResultCache | None = None,
    settings_override: Settings | None = None,
) -> FastMCP:
    """Create and configure the insight MCP server.

    This is the composition root. It:
    1. Loads settings and builds the goal config (negative goals fail here)
    2. Builds the key-value store, codec and the single ResultCache
    3. Creates the ScoreRefresher that owns the history slot
    4. Wires the health data provider (caller-supplied samples, then mock)
    5. Registers all tools
    """
    settings = settings_override or get_settings()
    goals = settings.goals()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Health insight scoring server. Turns already-fetched health samples "
            "into period-aware scores, keeps a rolling 7-day score history, and "
            "caches the last result plus externally generated narratives."
        ),
    )

    # --- Result cache ---
    codec: ValueCodec | None = None
    if cache_override is not None:
        cache = cache_override
    else:
        codec = _build_codec(settings)
        cache = ResultCache(_build_store(settings), codec)

    refresher = ScoreRefresher(cache, goals)

    # --- Health data provider ---
    static_provider = StaticHealthDataProvider()
    if health_data_provider_override is not None:
        provider: HealthDataProvider = health_data_provider_override
    else:
        provider = CompositeHealthDataProvider([static_provider, MockHealthDataProvider()])
        logger.info("Using caller-supplied samples with mock fallback")

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": VERSION,
            "cache_backend": settings.cache_backend,
            "cache_encrypted": codec is not None and codec.encrypted,
            "data_source": provider.data_source,
            "history_days": len(refresher.slot.history),
        }

    register_insight_tools(server, refresher, provider, static_provider)
    register_narrative_tools(server, refresher)
    logger.info("Insight and narrative tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""MCP tools for score refreshes and cached-result reads.

Refresh tools receive already-fetched samples (or pull from the configured
provider) and cache the primary result before history is built. Read tools
only ever read the result cache and the applied history; they never
recompute.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from vitalscore.domains.health.domain_logic.models import (
    DailyRecord,
    HealthSnapshot,
    Period,
)
from vitalscore.domains.health.domain_logic.tier_classifier import (
    classify,
    fallback_score,
    resolve_identity,
)
from vitalscore.domains.health.domain_logic.trend_analyzer import TrendAnalyzer

if TYPE_CHECKING:
    from vitalscore.domains.health.connectors import HealthDataProvider
    from vitalscore.domains.health.connectors.providers import StaticHealthDataProvider
    from vitalscore.domains.health.domain_logic.history_builder import StampedHistory
    from vitalscore.domains.health.domain_logic.refresh_coordinator import (
        RefreshResult,
        ScoreRefresher,
    )

logger = logging.getLogger(__name__)


def _parse_records(history: list[dict[str, Any]] | None) -> list[DailyRecord]:
    return [DailyRecord.from_mapping(item) for item in (history or [])]


def register_insight_tools(
    mcp: FastMCP,
    refresher: ScoreRefresher,
    provider: HealthDataProvider,
    static_provider: StaticHealthDataProvider,
) -> None:
    """Register refresh and read tools on the MCP server."""
    cache = refresher.cache

    def _apply_when_done(task: asyncio.Task[StampedHistory]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Score history build failed: %s", exc)
            return
        refresher.apply_history(task.result())

    async def _finish(
        result: RefreshResult,
        task: asyncio.Task[StampedHistory],
        await_history: bool,
        extra: dict[str, Any] | None = None,
    ) -> str:
        payload: dict[str, Any] = {**result.to_dict(), **(extra or {})}
        if await_history:
            stamped = await task
            payload["history_applied"] = refresher.apply_history(stamped)
            payload["score_history"] = refresher.slot.history.to_dict()
        else:
            task.add_done_callback(_apply_when_done)
            payload["history_applied"] = False
        return json.dumps(payload)

    @mcp.tool
    async def refresh_scores(
        snapshot: dict[str, Any],
        history: list[dict[str, Any]] | None = None,
        period: str = "day",
        await_history: bool = True,
    ) -> str:
        """Score already-fetched health samples and cache the result.

        Args:
            snapshot: Aggregate for the period, keyed by metric name
                (e.g. {"steps": 8500, "hrv": 45, "resting_heart_rate": 62}).
                Missing keys mean "not measured".
            history: Up to 90 daily records, each with a "date" (YYYY-MM-DD).
            period: One of day | week | month.
            await_history: Wait for the 7-day score history before returning.
        """
        period_value = Period.parse(period)
        current = HealthSnapshot.from_mapping(snapshot)
        records = _parse_records(history)
        static_provider.update(current, records)

        result, task = await refresher.refresh_async(current, records, period_value)
        return await _finish(result, task, await_history)

    @mcp.tool
    async def refresh_from_source(period: str = "day", await_history: bool = True) -> str:
        """Refresh scores from the configured health data source.

        Adapter failures are not fatal: missing inputs produce
        "not enough data" scores instead of an error.

        Args:
            period: One of day | week | month.
            await_history: Wait for the 7-day score history before returning.
        """
        period_value = Period.parse(period)
        result, task = await refresher.refresh_from_provider(provider, period_value)
        return await _finish(
            result, task, await_history, {"provenance": provider.get_provenance()}
        )

    @mcp.tool
    def get_score_history() -> str:
        """Return the last applied 7-day score history (oldest first)."""
        current = refresher.slot.current
        return json.dumps({
            "stamp": current.stamp.to_dict() if current else None,
            **refresher.slot.history.to_dict(),
        })

    @mcp.tool
    def score_trends() -> str:
        """Trend statistics and divergences over the 7-day score history."""
        history = refresher.slot.history
        if len(history) < 2:
            return json.dumps({
                "status": "insufficient_data",
                "days": len(history),
                "message": "At least 2 days of score history are needed for trends.",
            })
        return json.dumps(TrendAnalyzer(history).summary())

    @mcp.tool
    def get_cached_result() -> str:
        """Return every cached field plus the name a consumer may display."""
        snapshot = cache.snapshot()
        score = snapshot.main_score.score if snapshot.main_score else None
        payload = snapshot.to_dict()
        payload["display_identity"] = resolve_identity(snapshot.narrative, score).to_dict()
        payload["fallback_score"] = fallback_score(snapshot.weekly_stats)
        return json.dumps(payload)

    @mcp.tool
    def get_watch_payload() -> str:
        """Companion-device payload: versioned Day breakdown and display label.

        The tier label is included only when no external narrative is cached.
        """
        snapshot = cache.snapshot()
        main = snapshot.main_score
        identity = resolve_identity(snapshot.narrative, main.score if main else None)
        return json.dumps({
            "breakdown": snapshot.breakdown.to_payload() if snapshot.breakdown else None,
            "main_score": round(main.score) if main else None,
            "status": main.status if main else None,
            "label": identity.label,
            "is_fallback_label": identity.is_fallback,
            "tier_rank": classify(main.score).rank if main else None,
        })

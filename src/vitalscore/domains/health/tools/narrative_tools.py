"""MCP tools for the external narrative hand-off.

The narrative itself is produced elsewhere. These tools tell the
collaborator when a new narrative is warranted, store what it returns
verbatim, and manage the pending reveal.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from vitalscore.domains.health.domain_logic.content_hash import compute_content_hash
from vitalscore.domains.health.domain_logic.models import HealthSnapshot

if TYPE_CHECKING:
    from vitalscore.domains.health.domain_logic.refresh_coordinator import ScoreRefresher

logger = logging.getLogger(__name__)


def register_narrative_tools(mcp: FastMCP, refresher: ScoreRefresher) -> None:
    """Register narrative and cache-management tools on the MCP server."""
    cache = refresher.cache

    @mcp.tool
    def narrative_status(
        snapshot: dict[str, Any],
        notes: str | None = None,
        force: bool = False,
    ) -> str:
        """Check whether the cached narrative still matches the given inputs.

        Args:
            snapshot: The health samples a new narrative would be based on.
            notes: Optional free-text user notes included in the fingerprint.
            force: Request a new narrative even if the inputs are unchanged.
        """
        current = HealthSnapshot.from_mapping(snapshot)
        content_hash = compute_content_hash(current, notes)
        narrative = cache.load_external_narrative()
        return json.dumps({
            "content_hash": content_hash,
            "has_narrative": narrative is not None,
            "narrative_fresh": cache.load_valid_narrative() is not None,
            "significant_change": cache.has_significant_change(current.hrv),
            "is_stale": cache.is_narrative_stale(content_hash),
            "should_request": cache.should_request_narrative(content_hash, force=force),
            "has_pending_reveal": cache.has_pending_reveal(),
        })

    @mcp.tool
    def save_narrative(
        name: str,
        secondary_name: str,
        explanation: str,
        content_hash: str,
        score: float | None = None,
        stage_changes: bool = True,
    ) -> str:
        """Store a narrative returned by the external collaborator.

        Args:
            name: Display name of the narrative.
            secondary_name: Wiki-key style identifier (e.g. "Porsche_Taycan").
            explanation: Explanation text, stored verbatim.
            content_hash: Fingerprint from narrative_status.
            score: Score the collaborator attached, if any.
            stage_changes: Stage a changed narrative as a pending reveal
                instead of replacing the current one.
        """
        if stage_changes:
            outcome = cache.offer_narrative(name, secondary_name, explanation, content_hash, score)
        else:
            cache.save_external_narrative(name, secondary_name, explanation, content_hash, score)
            outcome = "saved"
        return json.dumps({
            "status": outcome,
            "has_pending_reveal": cache.has_pending_reveal(),
        })

    @mcp.tool
    def consume_pending_reveal() -> str:
        """Return the staged reveal once and promote it to the current narrative."""
        pending = cache.consume_pending_reveal()
        if pending is None:
            return json.dumps({"status": "none"})
        return json.dumps({"status": "revealed", "reveal": pending.to_dict()})

    @mcp.tool
    def clear_cache() -> str:
        """Wipe every cached field and the applied score history."""
        refresher.reset()
        return json.dumps({"status": "cleared"})

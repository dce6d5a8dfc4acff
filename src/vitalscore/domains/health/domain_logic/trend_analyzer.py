"""Short-range trend analysis over the rolling score history.

Computes per-score statistics and detects divergence patterns (sub-scores
moving in opposite directions across the week).
"""

from __future__ import annotations

import logging
import statistics
from typing import Any

from vitalscore.domains.health.domain_logic.models import (
    MAIN_SCORE_WEIGHTS,
    MetricKind,
    ScoreHistory,
)

logger = logging.getLogger(__name__)

# Minimum mean change (score points) counted as a direction.
DIRECTION_THRESHOLD = 3.0


def _direction(values: list[float]) -> str:
    if len(values) >= 4:
        mid = len(values) // 2
        diff = statistics.mean(values[mid:]) - statistics.mean(values[:mid])
    elif len(values) >= 2:
        diff = values[-1] - values[0]
    else:
        return "insufficient_data"
    if diff > DIRECTION_THRESHOLD:
        return "improving"
    if diff < -DIRECTION_THRESHOLD:
        return "declining"
    return "stable"


class TrendAnalyzer:
    """Computes trends and patterns from a ``ScoreHistory``.

    Usage::

        analyzer = TrendAnalyzer(slot.history)
        trend = analyzer.compute_score_trend(MetricKind.SLEEP_QUALITY)
        divergences = analyzer.detect_divergence_patterns()
    """

    def __init__(self, history: ScoreHistory) -> None:
        self._history = history

    def compute_score_trend(self, kind: MetricKind | str) -> dict[str, Any]:
        """Compute trend statistics for one score.

        Args:
            kind: A ``MetricKind`` or ``"main_score"``.

        Returns:
            Dict with: score, current, mean, min, max, std_dev, direction,
            data_points. Only ``score``, ``data_points`` and ``status`` when
            the history holds no values for it.
        """
        name = kind.value if isinstance(kind, MetricKind) else str(kind)
        values = [v for _, v in self._history.series(kind)]

        if not values:
            return {"score": name, "data_points": 0, "status": "no_data"}

        std_val = statistics.pstdev(values) if len(values) > 1 else 0.0
        return {
            "score": name,
            "current": round(values[-1], 2),
            "mean": round(statistics.mean(values), 2),
            "min": round(min(values), 2),
            "max": round(max(values), 2),
            "std_dev": round(std_val, 2),
            "direction": _direction(values),
            "data_points": len(values),
        }

    def detect_divergence_patterns(self) -> list[dict[str, Any]]:
        """Detect main-score contributors trending in opposite directions.

        Returns:
            List of dicts with improving_score, declining_score, their current
            values and a description.
        """
        trends = {}
        for kind in MAIN_SCORE_WEIGHTS:
            trend = self.compute_score_trend(kind)
            if trend["data_points"] >= 2:
                trends[kind.value] = trend

        improving = [name for name, t in trends.items() if t["direction"] == "improving"]
        declining = [name for name, t in trends.items() if t["direction"] == "declining"]

        divergences = []
        for up in improving:
            for down in declining:
                divergences.append({
                    "improving_score": up,
                    "declining_score": down,
                    "improving_current": trends[up]["current"],
                    "declining_current": trends[down]["current"],
                    "description": (
                        f"{_display(up)} is improving while {_display(down)} is declining."
                    ),
                })

        if divergences:
            logger.debug("Detected %d divergence pattern(s)", len(divergences))
        return divergences

    def summary(self) -> dict[str, Any]:
        """Trend for the main score and every stored sub-score."""
        kinds: list[MetricKind | str] = ["main_score"]
        if self._history.entries:
            kinds.extend(self._history.entries[-1].scores.keys())
        return {
            "days": len(self._history),
            "trends": [self.compute_score_trend(k) for k in kinds],
            "divergences": self.detect_divergence_patterns(),
        }


def _display(name: str) -> str:
    return name.replace("_", " ").capitalize()

"""Five ordered quality tiers derived from a 0-100 score.

Tier labels are internal identifiers. Consumers show them only when no
external narrative is cached; ``resolve_identity`` encodes that rule.
"""

from __future__ import annotations

from dataclasses import dataclass

from vitalscore.core.storage.models import ExternalNarrative, WeeklyStats


@dataclass(frozen=True)
class Tier:
    rank: int
    lower_bound: float
    label: str
    appearance_key: str

    def to_dict(self) -> dict[str, object]:
        return {
            "rank": self.rank,
            "lower_bound": self.lower_bound,
            "label": self.label,
            "appearance_key": self.appearance_key,
        }


TIERS: tuple[Tier, ...] = (
    Tier(rank=0, lower_bound=0, label="needs_attention", appearance_key="tier_0"),
    Tier(rank=1, lower_bound=25, label="okay", appearance_key="tier_1"),
    Tier(rank=2, lower_bound=45, label="good_condition", appearance_key="tier_2"),
    Tier(rank=3, lower_bound=65, label="excellent", appearance_key="tier_3"),
    Tier(rank=4, lower_bound=82, label="peak_performance", appearance_key="tier_4"),
)


def classify(score: float) -> Tier:
    """Map a score to its tier. Out-of-range input is clamped first.

    A score exactly on a lower bound belongs to that (higher) tier.
    """
    score = max(0.0, min(100.0, float(score)))
    for tier in reversed(TIERS):
        if score >= tier.lower_bound:
            return tier
    return TIERS[0]  # pragma: no cover


def tier_hash(score: float) -> str:
    """Stable key that only changes when the tier changes."""
    return f"tier_{classify(score).rank}"


# ---------------------------------------------------------------------------
# Weekly fallback score
# ---------------------------------------------------------------------------

def _sleep_points(hours: float) -> float:
    if hours >= 7.5:
        return 100
    if hours >= 7.0:
        return 85
    if hours >= 6.0:
        return 60
    if hours >= 5.0:
        return 35
    return 15


def _strain_points(strain: float) -> float:
    # Moderate strain (3-6) is the sweet spot.
    if 3 <= strain <= 6:
        return 85
    if 2 <= strain <= 7:
        return 65
    return 40


def fallback_score(stats: WeeklyStats | None) -> int | None:
    """Composite 0-100 score from weekly averages.

    Readiness 40%, sleep 25%, HRV 20%, strain balance 15%, renormalized over
    the averages that are present. Returns None when none are.
    """
    if stats is None:
        return None

    parts: list[tuple[float, float]] = []
    if stats.avg_readiness is not None:
        parts.append((max(0.0, min(100.0, stats.avg_readiness)), 0.40))
    if stats.avg_sleep_hours is not None:
        parts.append((_sleep_points(stats.avg_sleep_hours), 0.25))
    if stats.avg_hrv is not None:
        # Typical HRV range 10-80 ms mapped onto 0-100.
        parts.append((max(0.0, min(100.0, (stats.avg_hrv - 10) * 100 / 70)), 0.20))
    if stats.avg_strain is not None:
        parts.append((_strain_points(stats.avg_strain), 0.15))

    if not parts:
        return None
    weight_sum = sum(w for _, w in parts)
    score = sum(v * w for v, w in parts) / weight_sum
    return int(round(max(0.0, min(100.0, score))))


# ---------------------------------------------------------------------------
# Display identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DisplayIdentity:
    """What a consumer may show as the score's name."""

    label: str | None
    is_fallback: bool
    tier: Tier | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "label": self.label,
            "is_fallback": self.is_fallback,
            "tier": self.tier.to_dict() if self.tier else None,
        }


def resolve_identity(narrative: ExternalNarrative | None, score: float | None) -> DisplayIdentity:
    """Prefer the cached narrative name; fall back to the tier label.

    With neither a narrative nor a score the label is None so the consumer
    renders its "not enough data" state.
    """
    tier = classify(score) if score is not None else None
    if narrative is not None and narrative.name.strip():
        return DisplayIdentity(label=narrative.name, is_fallback=False, tier=tier)
    if tier is not None:
        return DisplayIdentity(label=tier.label, is_fallback=True, tier=tier)
    return DisplayIdentity(label=None, is_fallback=True)

"""Tests for tier classification, fallback score, and display identity."""

from __future__ import annotations

import pytest

from vitalscore.core.storage.models import ExternalNarrative, WeeklyStats
from vitalscore.domains.health.domain_logic.tier_classifier import (
    TIERS,
    classify,
    fallback_score,
    resolve_identity,
    tier_hash,
)


class TestClassify:
    @pytest.mark.parametrize(
        "score,label",
        [
            (0, "needs_attention"),
            (24.99, "needs_attention"),
            (25, "okay"),
            (44.9, "okay"),
            (45, "good_condition"),
            (65, "excellent"),
            (81.99, "excellent"),
            (82, "peak_performance"),
            (100, "peak_performance"),
        ],
    )
    def test_boundaries(self, score, label):
        assert classify(score).label == label

    def test_out_of_range_clamped(self):
        assert classify(-20).rank == 0
        assert classify(250).rank == 4

    def test_monotonic(self):
        ranks = [classify(s / 2).rank for s in range(0, 201)]
        assert ranks == sorted(ranks)
        assert set(ranks) == {t.rank for t in TIERS}

    def test_appearance_keys_distinct(self):
        assert len({t.appearance_key for t in TIERS}) == len(TIERS)

    def test_tier_hash_only_changes_across_tiers(self):
        assert tier_hash(66) == tier_hash(81)
        assert tier_hash(81) != tier_hash(82)


class TestFallbackScore:
    def test_none(self):
        assert fallback_score(None) is None
        assert fallback_score(WeeklyStats()) is None

    def test_full_stats(self):
        stats = WeeklyStats(avg_sleep_hours=7.2, avg_readiness=70, avg_strain=4, avg_hrv=45)
        # 70*.40 + 85*.25 + 50*.20 + 85*.15
        assert fallback_score(stats) == 72

    def test_renormalized_over_present(self):
        assert fallback_score(WeeklyStats(avg_sleep_hours=8)) == 100
        assert fallback_score(WeeklyStats(avg_strain=9)) == 40

    @pytest.mark.parametrize(
        "hours,expected",
        [(7.5, 100), (7.0, 85), (6.5, 60), (5.0, 35), (4.0, 15)],
    )
    def test_sleep_steps(self, hours, expected):
        assert fallback_score(WeeklyStats(avg_sleep_hours=hours)) == expected

    @pytest.mark.parametrize("strain,expected", [(3, 85), (6, 85), (2, 65), (7, 65), (1, 40)])
    def test_strain_steps(self, strain, expected):
        assert fallback_score(WeeklyStats(avg_strain=strain)) == expected

    def test_hrv_mapping_clamped(self):
        assert fallback_score(WeeklyStats(avg_hrv=5)) == 0
        assert fallback_score(WeeklyStats(avg_hrv=120)) == 100

    def test_always_in_range(self):
        stats = WeeklyStats(avg_sleep_hours=12, avg_readiness=180, avg_strain=0, avg_hrv=500)
        assert 0 <= fallback_score(stats) <= 100


class TestResolveIdentity:
    def _narrative(self, name: str = "Porsche Taycan") -> ExternalNarrative:
        return ExternalNarrative(
            name=name, secondary_name="Porsche_Taycan", explanation="x", content_hash="h"
        )

    def test_narrative_wins(self):
        identity = resolve_identity(self._narrative(), 90)
        assert identity.label == "Porsche Taycan"
        assert identity.is_fallback is False
        assert identity.tier.label == "peak_performance"

    def test_tier_label_without_narrative(self):
        identity = resolve_identity(None, 50)
        assert identity.label == "good_condition"
        assert identity.is_fallback is True

    def test_blank_narrative_name_falls_back(self):
        identity = resolve_identity(self._narrative("  "), 30)
        assert identity.label == "okay"

    def test_nothing_available(self):
        identity = resolve_identity(None, None)
        assert identity.label is None
        assert identity.to_dict()["tier"] is None

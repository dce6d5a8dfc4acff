"""Tests for the metric engine: sub-score formulas, windows, main score quorum."""

from __future__ import annotations

import copy
from datetime import timedelta

import pytest

from conftest import TODAY, make_history
from vitalscore.domains.health.domain_logic.metric_engine import (
    _interpolate,
    compute_baselines,
    compute_main_score,
    compute_scores,
    compute_strain,
)
from vitalscore.domains.health.domain_logic.models import (
    MAIN_SCORE_WEIGHTS,
    DailyRecord,
    GoalConfig,
    HealthSnapshot,
    InsightMetric,
    MetricKind,
    Period,
    Reliability,
    Trend,
)


def _scenario_snapshot() -> HealthSnapshot:
    return HealthSnapshot(
        date=TODAY, steps=8500, hrv=45, resting_heart_rate=62, sleep_hours=7.2
    )


class TestInterpolation:
    def test_midpoint(self):
        assert _interpolate(6.0, [(5.0, 25), (7.0, 75)]) == pytest.approx(50.0)

    def test_clamped_below_and_above(self):
        anchors = [(5.0, 25), (7.0, 75), (8.5, 100)]
        assert _interpolate(2.0, anchors) == 25
        assert _interpolate(12.0, anchors) == 100

    def test_descending_scores(self):
        assert _interpolate(1.075, [(0.85, 100), (1.0, 70), (1.15, 20)]) == pytest.approx(45.0)


class TestStrain:
    def test_exercise_minutes(self):
        assert compute_strain(exercise_minutes=30) == pytest.approx(3.0)

    def test_capped_at_ten(self):
        assert compute_strain(exercise_minutes=240) == 10.0

    def test_active_energy_fallback(self):
        assert compute_strain(active_energy=300) == pytest.approx(3.0)

    def test_nothing_measured(self):
        assert compute_strain() is None


class TestAllAbsent:
    def test_empty_snapshot_without_history(self):
        bundle = compute_scores(HealthSnapshot(), [])
        assert bundle.main_score is None
        for kind in MetricKind:
            metric = bundle.get(kind)
            assert metric.value is None, kind
            assert metric.confidence is False
        assert bundle.daily_goals.overall is None

    def test_empty_snapshot_with_history_does_not_synthesize_current_values(self, sample_history):
        bundle = compute_scores(HealthSnapshot(date=TODAY + timedelta(days=1)), sample_history)
        assert bundle.main_score is None
        assert all(m.value is None for m in bundle.metrics.values())

    def test_every_kind_is_reported(self):
        bundle = compute_scores(HealthSnapshot(), [])
        assert set(bundle.metrics) == set(MetricKind)


class TestNervousSystemBalance:
    def test_hrv_at_94_percent_of_baseline(self):
        history = make_history(7, end=TODAY - timedelta(days=1), resting_heart_rate=None)
        bundle = compute_scores(_scenario_snapshot(), history)
        metric = bundle.get(MetricKind.NERVOUS_SYSTEM_BALANCE)
        assert metric.confidence is True
        assert metric.components["hrv_component"] == pytest.approx(93.75)
        assert metric.value == pytest.approx(93.75)

    def test_blends_resting_heart_rate(self):
        history = make_history(7, end=TODAY - timedelta(days=1), resting_heart_rate=62)
        bundle = compute_scores(_scenario_snapshot(), history)
        metric = bundle.get(MetricKind.NERVOUS_SYSTEM_BALANCE)
        # 0.65 * 93.75 + 0.35 * 100
        assert metric.value == pytest.approx(95.9375)
        assert 0 <= metric.value <= 100

    def test_day_falls_back_to_snapshot_baseline(self):
        snapshot = HealthSnapshot(date=TODAY, hrv=45, hrv_7d_baseline=48)
        bundle = compute_scores(snapshot, [])
        assert bundle.value(MetricKind.NERVOUS_SYSTEM_BALANCE) == pytest.approx(93.75)

    def test_component_clamped_to_100(self):
        history = make_history(7, end=TODAY - timedelta(days=1), resting_heart_rate=None)
        snapshot = HealthSnapshot(date=TODAY, hrv=200)
        bundle = compute_scores(snapshot, history)
        assert bundle.value(MetricKind.NERVOUS_SYSTEM_BALANCE) == 100.0

    def test_reliability_from_history_length(self):
        history = make_history(7, end=TODAY - timedelta(days=1))
        bundle = compute_scores(_scenario_snapshot(), history)
        assert bundle.get(MetricKind.NERVOUS_SYSTEM_BALANCE).reliability == Reliability.MEDIUM

    def test_declining_trend(self):
        history = make_history(7, end=TODAY - timedelta(days=1), hrv=60)
        bundle = compute_scores(HealthSnapshot(date=TODAY, hrv=45), history)
        assert bundle.get(MetricKind.NERVOUS_SYSTEM_BALANCE).trend == Trend.DECLINING


class TestPeriodWindows:
    def _history(self) -> list[DailyRecord]:
        older = make_history(21, end=TODAY - timedelta(days=8), hrv=60, resting_heart_rate=None)
        recent = make_history(7, end=TODAY - timedelta(days=1), hrv=40, resting_heart_rate=None)
        return older + recent

    def test_day_uses_trailing_seven_days(self):
        bundle = compute_scores(HealthSnapshot(date=TODAY, hrv=40), self._history(), Period.DAY)
        assert bundle.value(MetricKind.NERVOUS_SYSTEM_BALANCE) == pytest.approx(100.0)

    def test_week_uses_trailing_28_days(self):
        bundle = compute_scores(HealthSnapshot(date=TODAY, hrv=40), self._history(), Period.WEEK)
        # baseline (21 * 60 + 7 * 40) / 28 = 55
        assert bundle.value(MetricKind.NERVOUS_SYSTEM_BALANCE) == pytest.approx(40 / 55 * 100)

    def test_period_accepts_string(self):
        bundle = compute_scores(HealthSnapshot(date=TODAY, hrv=40), self._history(), "month")
        assert bundle.period is Period.MONTH

    def test_unknown_period_rejected(self):
        with pytest.raises(ValueError, match="period"):
            compute_scores(HealthSnapshot(), [], "year")

    def test_future_records_ignored(self):
        history = make_history(7, end=TODAY - timedelta(days=1), resting_heart_rate=None)
        future = make_history(7, end=TODAY + timedelta(days=7), hrv=10, resting_heart_rate=None)
        bundle = compute_scores(_scenario_snapshot(), history + future)
        assert bundle.value(MetricKind.NERVOUS_SYSTEM_BALANCE) == pytest.approx(93.75)

    def test_baselines_bounded_by_supplied_history(self):
        history = make_history(3, end=TODAY - timedelta(days=1))
        baselines = compute_baselines(history, Period.MONTH, as_of=TODAY)
        assert len(baselines.long) == 3


class TestRecoveryAndSleep:
    def test_recovery_readiness_blend(self):
        history = make_history(7, end=TODAY - timedelta(days=1), hrv=50, resting_heart_rate=60)
        snapshot = HealthSnapshot(date=TODAY, hrv=50, resting_heart_rate=60, sleep_hours=7.0)
        metric = compute_scores(snapshot, history).get(MetricKind.RECOVERY_READINESS)
        # (70 * .35 + 70 * .25 + 75 * .30) / .90
        assert metric.value == pytest.approx(64.5 / 0.9)
        assert metric.reliability == Reliability.HIGH

    def test_recovery_with_sleep_only(self):
        metric = compute_scores(HealthSnapshot(sleep_hours=8.5), []).get(
            MetricKind.RECOVERY_READINESS
        )
        assert metric.value == pytest.approx(100.0)
        assert metric.reliability == Reliability.LOW

    def test_sleep_quality_duration_only(self):
        bundle = compute_scores(HealthSnapshot(sleep_hours=8.5), [])
        assert bundle.value(MetricKind.SLEEP_QUALITY) == pytest.approx(100.0)

    def test_sleep_quality_stage_split(self):
        snapshot = HealthSnapshot(
            sleep_hours=8.0, sleep_deep_hours=1.4, sleep_rem_hours=1.8, sleep_efficiency=95
        )
        metric = compute_scores(snapshot, []).get(MetricKind.SLEEP_QUALITY)
        assert metric.components["deep_percent"] == pytest.approx(17.5)
        assert metric.components["rem_percent"] == pytest.approx(22.5)
        # duration 8h scores 91.67; stage split and efficiency are at their peaks
        assert metric.value == pytest.approx(0.40 * (75 + 25 / 1.5) + 0.60 * 100, abs=0.01)

    def test_sleep_debt(self):
        history = make_history(6, end=TODAY - timedelta(days=1), sleep_hours=6.5)
        snapshot = HealthSnapshot(date=TODAY, sleep_hours=6.5)
        metric = compute_scores(snapshot, history).get(MetricKind.SLEEP_DEBT)
        assert metric.value == pytest.approx(70.0)
        assert metric.components["nightly_deficit_hours"] == pytest.approx(1.0)

    def test_recovery_debt_balanced_week(self):
        history = make_history(6, end=TODAY - timedelta(days=1), sleep_hours=7.0)
        snapshot = HealthSnapshot(date=TODAY, sleep_hours=7.0, exercise_minutes=30)
        metric = compute_scores(snapshot, history).get(MetricKind.RECOVERY_DEBT)
        # 7h sleep -> 65 readiness, 30 min -> 3 strain -> 30 drain.
        assert metric.components["balance"] == pytest.approx(35.0)
        assert metric.value == pytest.approx(85.0)
        assert metric.reliability == Reliability.HIGH

    @pytest.mark.parametrize(
        "sleep_hours, exercise_minutes, expected",
        [(9.0, 0, 100.0), (5.0, 120, 0.0)],
    )
    def test_recovery_debt_clamped(self, sleep_hours, exercise_minutes, expected):
        history = make_history(
            6, end=TODAY - timedelta(days=1),
            sleep_hours=sleep_hours, exercise_minutes=exercise_minutes,
        )
        snapshot = HealthSnapshot(
            date=TODAY, sleep_hours=sleep_hours, exercise_minutes=exercise_minutes
        )
        assert compute_scores(snapshot, history).value(MetricKind.RECOVERY_DEBT) == expected

    def test_recovery_debt_needs_tonights_sleep(self, sample_history):
        snapshot = HealthSnapshot(date=TODAY + timedelta(days=1), exercise_minutes=30)
        assert compute_scores(snapshot, sample_history).value(MetricKind.RECOVERY_DEBT) is None

    def test_recovery_debt_skips_days_without_sleep(self):
        history = make_history(6, end=TODAY - timedelta(days=1), sleep_hours=None)
        snapshot = HealthSnapshot(date=TODAY, sleep_hours=7.0)
        metric = compute_scores(snapshot, history).get(MetricKind.RECOVERY_DEBT)
        assert metric.components["days"] == 1
        assert metric.reliability == Reliability.INSUFFICIENT

    def test_undated_snapshot_replaces_newest_day(self):
        history = make_history(14)
        history[-1].sleep_hours = 5.0
        history[-1].exercise_minutes = 120
        dated = compute_scores(
            HealthSnapshot(date=TODAY, sleep_hours=7.5, exercise_minutes=30), history
        )
        undated = compute_scores(HealthSnapshot(sleep_hours=7.5, exercise_minutes=30), history)
        assert undated.value(MetricKind.SLEEP_DEBT) == pytest.approx(100.0)
        for kind in (
            MetricKind.SLEEP_DEBT,
            MetricKind.SLEEP_CONSISTENCY,
            MetricKind.LOAD_BALANCE,
            MetricKind.RECOVERY_DEBT,
        ):
            assert undated.value(kind) == pytest.approx(dated.value(kind)), kind

    def test_sleep_consistency_needs_five_nights(self):
        snapshot = HealthSnapshot(date=TODAY, sleep_hours=7.5)
        few = make_history(3, end=TODAY - timedelta(days=1))
        enough = make_history(10, end=TODAY - timedelta(days=1))
        assert compute_scores(snapshot, few).value(MetricKind.SLEEP_CONSISTENCY) is None
        assert compute_scores(snapshot, enough).value(MetricKind.SLEEP_CONSISTENCY) == 100


class TestLoadAndFitness:
    def test_load_balance_steady_training(self, sample_history):
        snapshot = HealthSnapshot(date=TODAY + timedelta(days=1), exercise_minutes=30)
        metric = compute_scores(snapshot, sample_history).get(MetricKind.LOAD_BALANCE)
        assert metric.components["acwr"] == pytest.approx(1.0)
        assert metric.value == pytest.approx(95.0)

    def test_load_balance_without_chronic_history(self):
        bundle = compute_scores(HealthSnapshot(exercise_minutes=30), [])
        assert bundle.value(MetricKind.LOAD_BALANCE) is None

    def test_training_strain(self):
        bundle = compute_scores(HealthSnapshot(exercise_minutes=45), [])
        assert bundle.value(MetricKind.TRAINING_STRAIN) == pytest.approx(45.0)

    def test_cardio_fitness_absolute_only(self):
        bundle = compute_scores(HealthSnapshot(vo2max=45), [])
        assert bundle.value(MetricKind.CARDIO_FITNESS_TREND) == pytest.approx(75.0)

    def test_workout_readiness_needs_two_inputs(self):
        bundle = compute_scores(HealthSnapshot(sleep_efficiency=90), [])
        assert bundle.value(MetricKind.SLEEP_QUALITY) is not None
        assert bundle.value(MetricKind.WORKOUT_READINESS) is None

    def test_workout_readiness_mean(self):
        bundle = compute_scores(HealthSnapshot(sleep_hours=8.5), [])
        assert bundle.value(MetricKind.WORKOUT_READINESS) == pytest.approx(100.0)


class TestActivityAndGoals:
    def test_activity_against_goal_without_history(self):
        bundle = compute_scores(HealthSnapshot(steps=8000), [])
        assert bundle.value(MetricKind.ACTIVITY_SCORE) == pytest.approx(100.0)

    def test_activity_requires_current_steps(self, sample_history):
        bundle = compute_scores(HealthSnapshot(date=TODAY, hrv=45), sample_history)
        assert bundle.value(MetricKind.ACTIVITY_SCORE) is None

    def test_daily_goal_ratios(self):
        snapshot = HealthSnapshot(steps=4000, stand_hours=12, exercise_minutes=45)
        goals = compute_scores(snapshot, []).daily_goals
        assert goals.steps == pytest.approx(0.5)
        assert goals.stand_hours == pytest.approx(1.0)
        assert goals.exercise_minutes == pytest.approx(1.5)
        assert goals.active_energy is None
        # Ratios are capped at 1 for the overall figure.
        assert goals.overall == pytest.approx((0.5 + 1.0 + 1.0) / 3)

    def test_zero_goal_yields_absent_ratio(self):
        bundle = compute_scores(HealthSnapshot(steps=4000), [], goals=GoalConfig(steps=0))
        assert bundle.daily_goals.steps is None

    def test_negative_goal_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            GoalConfig(steps=-1)


class TestMainScore:
    def test_one_contributor_is_below_quorum(self):
        metrics = {MetricKind.RECOVERY_READINESS: InsightMetric(MetricKind.RECOVERY_READINESS, 80)}
        assert compute_main_score(metrics) is None

    def test_two_contributors_renormalized(self):
        metrics = {
            MetricKind.RECOVERY_READINESS: InsightMetric(MetricKind.RECOVERY_READINESS, 80),
            MetricKind.SLEEP_QUALITY: InsightMetric(MetricKind.SLEEP_QUALITY, 60),
        }
        assert compute_main_score(metrics) == pytest.approx((80 * 0.25 + 60 * 0.20) / 0.45)

    def test_non_contributors_ignored(self):
        metrics = {
            MetricKind.RECOVERY_READINESS: InsightMetric(MetricKind.RECOVERY_READINESS, 80),
            MetricKind.SLEEP_DEBT: InsightMetric(MetricKind.SLEEP_DEBT, 10),
            MetricKind.TRAINING_STRAIN: InsightMetric(MetricKind.TRAINING_STRAIN, 10),
        }
        assert compute_main_score(metrics) is None

    def test_all_six_equal_scores(self):
        metrics = {kind: InsightMetric(kind, 70) for kind in MAIN_SCORE_WEIGHTS}
        assert compute_main_score(metrics) == pytest.approx(70.0)

    def test_bundle_with_single_contributor_has_no_main_score(self):
        bundle = compute_scores(HealthSnapshot(steps=8000), [])
        assert bundle.main_score is None

    def test_bundle_with_two_contributors(self):
        bundle = compute_scores(HealthSnapshot(steps=8000, exercise_minutes=30), [])
        # activity 100 (weight .10) and energy 70 (weight .15)
        assert bundle.value(MetricKind.ENERGY_FORECAST) == pytest.approx(70.0)
        assert bundle.main_score == pytest.approx((100 * 0.10 + 70 * 0.15) / 0.25)


class TestPurity:
    def test_idempotent(self, sample_history):
        snapshot = _scenario_snapshot()
        first = compute_scores(snapshot, sample_history)
        second = compute_scores(snapshot, sample_history)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_inputs_not_mutated(self, sample_history):
        original = copy.deepcopy(sample_history)
        shuffled = list(reversed(sample_history))
        compute_scores(_scenario_snapshot(), shuffled)
        assert list(reversed(shuffled)) == original

    def test_unsorted_history_matches_sorted(self, sample_history):
        snapshot = _scenario_snapshot()
        forward = compute_scores(snapshot, sample_history)
        backward = compute_scores(snapshot, list(reversed(sample_history)))
        assert forward == backward

    def test_values_within_range(self, sample_history):
        snapshot = HealthSnapshot(
            date=TODAY, steps=60000, hrv=500, resting_heart_rate=20, sleep_hours=14,
            exercise_minutes=600, vo2max=90,
        )
        bundle = compute_scores(snapshot, sample_history)
        for metric in bundle.metrics.values():
            if metric.value is not None:
                assert 0 <= metric.value <= 100, metric.kind
        assert 0 <= bundle.main_score <= 100

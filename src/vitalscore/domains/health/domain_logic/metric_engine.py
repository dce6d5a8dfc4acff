"""Deterministic metric engine: raw samples + history -> period-aware sub-scores.

Each compute function takes the current snapshot, precomputed baselines and
goals, and returns an ``InsightMetric``.

Every sub-component is clamped to [0, 100] before blending, and blends are
renormalized over the components that are present. A sub-score whose inputs
are all absent has ``value=None``; no placeholder numbers are substituted.
All formulas are pure: no I/O, no clock, no randomness.
"""

from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass, field
from datetime import date, timedelta

from vitalscore.domains.health.domain_logic.models import (
    ACUTE_WINDOW_DAYS,
    MAIN_SCORE_QUORUM,
    MAIN_SCORE_WEIGHTS,
    MAX_HISTORY_DAYS,
    PERIOD_WINDOWS,
    DailyGoalProgress,
    DailyRecord,
    GoalConfig,
    HealthSnapshot,
    InsightMetric,
    MetricKind,
    Period,
    Reliability,
    ScoreBundle,
    Trend,
    WorkoutSummary,
    sort_history,
)

logger = logging.getLogger(__name__)

DEFAULT_GOALS = GoalConfig()


def _clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp a value to [lo, hi]."""
    return max(lo, min(hi, value))


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def _interpolate(value: float, anchors: list[tuple[float, float]]) -> float:
    """Piecewise-linear interpolation through ``(x, score)`` anchors.

    Values beyond the first/last anchor take that anchor's score.
    """
    points = sorted(anchors)
    if value <= points[0][0]:
        return points[0][1]
    if value >= points[-1][0]:
        return points[-1][1]
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        if x0 <= value <= x1:
            ratio = (value - x0) / (x1 - x0)
            return y0 + ratio * (y1 - y0)
    return points[-1][1]  # pragma: no cover


def _blend(parts: list[tuple[str, float | None, float]]) -> tuple[float | None, dict[str, float]]:
    """Weighted blend of ``(name, value, weight)`` over present parts only."""
    components: dict[str, float] = {}
    total = 0.0
    weight_sum = 0.0
    for name, value, weight in parts:
        if value is None:
            continue
        clamped = _clamp(value)
        components[name] = clamped
        total += clamped * weight
        weight_sum += weight
    if weight_sum <= 0:
        return None, components
    return _clamp(total / weight_sum), components


def _reliability(points: int, minimum: int, good: int) -> Reliability:
    if points < minimum:
        return Reliability.INSUFFICIENT
    if points < good // 2:
        return Reliability.LOW
    if points < good:
        return Reliability.MEDIUM
    return Reliability.HIGH


def _trend(
    recent: float | None,
    baseline: float | None,
    *,
    higher_is_better: bool = True,
    threshold: float = 0.05,
) -> Trend | None:
    if recent is None or baseline is None or baseline <= 0:
        return None
    change = (recent - baseline) / baseline
    if abs(change) <= threshold:
        return Trend.STABLE
    improving = change > 0 if higher_is_better else change < 0
    return Trend.IMPROVING if improving else Trend.DECLINING


def _ratio(value: float | None, baseline: float | None) -> float | None:
    if value is None or baseline is None or baseline <= 0:
        return None
    return value / baseline


def compute_strain(
    exercise_minutes: float | None = None,
    active_energy: float | None = None,
    workouts: list[WorkoutSummary] | None = None,
) -> float | None:
    """Training strain on a 0-10 scale.

    Roughly 3 strain points per 30 exercise minutes. Falls back to workout
    durations, then to active energy (3 points per 300 kcal).
    """
    if exercise_minutes is not None:
        return min(10.0, exercise_minutes / 10.0)
    durations = [w.duration_minutes for w in (workouts or []) if w.duration_minutes is not None]
    if durations:
        return min(10.0, sum(durations) / 10.0)
    if active_energy is not None:
        return min(10.0, active_energy / 100.0)
    return None


def record_strain(record: DailyRecord) -> float | None:
    return compute_strain(record.exercise_minutes, record.active_energy)


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------

@dataclass
class Baselines:
    """History windows resolved once per computation.

    ``short``/``consistency``/``long`` follow the period's trailing window
    sizes; ``acute`` is always the last 7 days for the workload ratio.
    """

    period: Period
    as_of: date | None
    short: list[DailyRecord] = field(default_factory=list)
    consistency: list[DailyRecord] = field(default_factory=list)
    long: list[DailyRecord] = field(default_factory=list)
    acute: list[DailyRecord] = field(default_factory=list)
    records: list[DailyRecord] = field(default_factory=list)

    @staticmethod
    def values(window: list[DailyRecord], name: str, *, positive: bool = False) -> list[float]:
        out = []
        for record in window:
            value = getattr(record, name)
            if value is None or (positive and value <= 0):
                continue
            out.append(value)
        return out

    def mean(self, window: list[DailyRecord], name: str) -> float | None:
        return _mean(self.values(window, name, positive=True))


def _window(records: list[DailyRecord], end: date, days: int) -> list[DailyRecord]:
    start = end - timedelta(days=days - 1)
    return [r for r in records if start <= r.date <= end]


def compute_baselines(
    history: list[DailyRecord],
    period: Period = Period.DAY,
    *,
    as_of: date | None = None,
) -> Baselines:
    """Resolve trailing history windows for ``period``.

    Windows end at ``as_of`` when a record exists for that date, otherwise
    on the day before it, so a "today" snapshot is compared against the
    preceding days. Records after ``as_of`` are ignored. Without ``as_of``
    the newest record's date is used.
    """
    records = sort_history(history)
    if not records:
        return Baselines(period=period, as_of=as_of)

    if as_of is None:
        as_of = records[-1].date
    records = [r for r in records if r.date <= as_of]
    dates = {r.date for r in records}
    end = as_of if as_of in dates else as_of - timedelta(days=1)
    records = _window(records, end, MAX_HISTORY_DAYS)

    short_days, consistency_days, long_days = PERIOD_WINDOWS[period]
    return Baselines(
        period=period,
        as_of=as_of,
        short=_window(records, end, short_days),
        consistency=_window(records, end, consistency_days),
        long=_window(records, end, long_days),
        acute=_window(records, end, ACUTE_WINDOW_DAYS),
        records=records,
    )


def _current_day(current: HealthSnapshot, base: Baselines) -> date | None:
    """Date the current reading stands for; undated snapshots take the baseline anchor."""
    return current.date or base.as_of


def _earlier(
    window: list[DailyRecord], current: HealthSnapshot, base: Baselines
) -> list[DailyRecord]:
    day = _current_day(current, base)
    return [r for r in window if r.date != day]


def _with_current(
    window: list[DailyRecord], current: HealthSnapshot, base: Baselines, name: str, value: float
) -> list[float]:
    """Window values for ``name`` with the current reading replacing its own day."""
    return Baselines.values(_earlier(window, current, base), name) + [value]


def _short_hrv_baseline(current: HealthSnapshot, base: Baselines) -> float | None:
    baseline = base.mean(base.short, "hrv")
    if baseline is None and base.period is Period.DAY:
        baseline = current.hrv_7d_baseline or None
    return baseline


# ---------------------------------------------------------------------------
# Recovery domain
# ---------------------------------------------------------------------------

def compute_nervous_system_balance(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """HRV relative to its short baseline (65%) and inverse resting-HR ratio (35%).

    HRV at 94% of baseline scores 94 on the HRV component.
    """
    hrv_baseline = _short_hrv_baseline(current, base)
    rhr_baseline = base.mean(base.short, "resting_heart_rate")

    hrv_ratio = _ratio(current.hrv, hrv_baseline)
    rhr_ratio = _ratio(rhr_baseline, current.resting_heart_rate)

    value, components = _blend([
        ("hrv_component", None if hrv_ratio is None else hrv_ratio * 100, 0.65),
        ("rhr_component", None if rhr_ratio is None else rhr_ratio * 100, 0.35),
    ])
    if hrv_baseline is not None:
        components["hrv_baseline_ms"] = hrv_baseline

    return InsightMetric(
        kind=MetricKind.NERVOUS_SYSTEM_BALANCE,
        value=value,
        reliability=_reliability(len(Baselines.values(base.short, "hrv")), 5, 14),
        trend=_trend(current.hrv, hrv_baseline),
        components=components,
    )


def compute_recovery_readiness(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """Recovery readiness from HRV, resting HR, sleep and heart-rate recovery.

    Sub-signals:
        HRV vs short baseline (35%): 0.7x -> 20, 1.0x -> 70, 1.3x -> 100
        RHR vs short baseline (25%): 1.15x -> 20, 1.0x -> 70, 0.85x -> 100
        Sleep duration (30%): 5h -> 30, 7h -> 75, 8.5h -> 100
        Heart-rate recovery (10%): 12 bpm -> 30, 20 -> 70, 30 -> 100
    """
    hrv_ratio = _ratio(current.hrv, _short_hrv_baseline(current, base))
    rhr_ratio = _ratio(current.resting_heart_rate, base.mean(base.short, "resting_heart_rate"))

    hrv_score = None if hrv_ratio is None else _interpolate(
        hrv_ratio, [(0.7, 20), (1.0, 70), (1.3, 100)]
    )
    rhr_score = None if rhr_ratio is None else _interpolate(
        rhr_ratio, [(0.85, 100), (1.0, 70), (1.15, 20)]
    )
    sleep_score = None if current.sleep_hours is None else _interpolate(
        current.sleep_hours, [(5.0, 30), (7.0, 75), (8.5, 100)]
    )
    hrr_score = None if current.heart_rate_recovery is None else _interpolate(
        current.heart_rate_recovery, [(12, 30), (20, 70), (30, 100)]
    )

    value, components = _blend([
        ("hrv_score", hrv_score, 0.35),
        ("rhr_score", rhr_score, 0.25),
        ("sleep_score", sleep_score, 0.30),
        ("hrr_score", hrr_score, 0.10),
    ])

    present = len(components)
    if present >= 3:
        reliability = Reliability.HIGH
    elif present == 2:
        reliability = Reliability.MEDIUM
    elif present == 1:
        reliability = Reliability.LOW
    else:
        reliability = Reliability.INSUFFICIENT

    return InsightMetric(
        kind=MetricKind.RECOVERY_READINESS,
        value=value,
        reliability=reliability,
        components=components,
    )


def compute_stress_load_index(
    current: HealthSnapshot, base: Baselines, goals: GoalConfig
) -> InsightMetric:
    """Stress load (higher = more stress) against long baselines.

    HRV depression 40%, resting-HR elevation 30%, sleep deficit 30%.
    """
    hrv_ratio = _ratio(current.hrv, base.mean(base.long, "hrv"))
    rhr_ratio = _ratio(current.resting_heart_rate, base.mean(base.long, "resting_heart_rate"))

    hrv_depression = None if hrv_ratio is None else max(0.0, (1 - hrv_ratio) * 100)
    rhr_elevation = None if rhr_ratio is None else max(0.0, (rhr_ratio - 1) * 100)

    sleep_deficit = None
    target = goals.sleep_target_hours
    if current.sleep_hours is not None and target > 0:
        sleep_deficit = max(0.0, target - current.sleep_hours) / target * 100

    value, components = _blend([
        ("hrv_depression", hrv_depression, 0.40),
        ("rhr_elevation", rhr_elevation, 0.30),
        ("sleep_deficit", sleep_deficit, 0.30),
    ])

    return InsightMetric(
        kind=MetricKind.STRESS_LOAD_INDEX,
        value=value,
        reliability=_reliability(len(components), 1, 3),
        components=components,
    )


def compute_morning_freshness(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    sleep_score = None if current.sleep_hours is None else _interpolate(
        current.sleep_hours, [(5.0, 30), (7.0, 70), (8.5, 95)]
    )

    rhr_baseline = base.mean(base.long, "resting_heart_rate")
    rhr_delta_score = None
    if current.resting_heart_rate is not None and rhr_baseline is not None:
        delta = rhr_baseline - current.resting_heart_rate  # positive = lower than usual
        rhr_delta_score = _interpolate(delta, [(-5, 20), (0, 60), (5, 95)])

    hrv_ratio = _ratio(current.hrv, base.mean(base.long, "hrv"))
    hrv_score = None if hrv_ratio is None else _interpolate(
        hrv_ratio, [(0.75, 20), (1.0, 70), (1.25, 95)]
    )

    value, components = _blend([
        ("sleep_score", sleep_score, 0.50),
        ("rhr_delta_score", rhr_delta_score, 0.25),
        ("hrv_ratio_score", hrv_score, 0.25),
    ])

    return InsightMetric(
        kind=MetricKind.MORNING_FRESHNESS,
        value=value,
        reliability=_reliability(len(components), 1, 3),
        components=components,
    )


def compute_recovery_debt(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """Average daily recovery balance over the last 7 days, mapped onto 0-100.

    A day's balance is its sleep-driven readiness (5h -> 30, 7h -> 65,
    9h -> 90) minus 10 points per strain point from exercise minutes. Days
    without sleep are skipped. The mean balance is clamped to [-50, 50] and
    shifted by 50, so 50 is even, above 50 a surplus, below 50 a debt.
    Requires tonight's sleep.
    """
    if current.sleep_hours is None or current.sleep_hours <= 0:
        return InsightMetric(kind=MetricKind.RECOVERY_DEBT)

    days = [(r.sleep_hours, r.exercise_minutes) for r in _earlier(base.acute, current, base)]
    days.append((current.sleep_hours, current.exercise_minutes))

    balances = []
    for sleep_hours, exercise_minutes in days:
        if sleep_hours is None or sleep_hours <= 0:
            continue
        readiness = _interpolate(sleep_hours, [(5.0, 30), (7.0, 65), (9.0, 90)])
        strain = compute_strain(exercise_minutes) or 0.0
        balances.append(readiness - strain * 10)

    balance = _clamp(sum(balances) / len(balances), -50.0, 50.0)
    return InsightMetric(
        kind=MetricKind.RECOVERY_DEBT,
        value=balance + 50.0,
        reliability=_reliability(len(balances), 3, 7),
        components={"balance": balance, "days": len(balances)},
    )


# ---------------------------------------------------------------------------
# Sleep domain
# ---------------------------------------------------------------------------

def compute_sleep_quality(current: HealthSnapshot) -> InsightMetric:
    """Sleep quality from duration, stage split and efficiency.

    Sub-signals:
        Duration (40%): 5h -> 25, 7h -> 75, 8.5h -> 100
        Deep sleep share (25%): peak at 17.5%
        REM share (20%): peak at 22.5%
        Efficiency (15%): reported value, else estimated from stage split
    """
    duration = current.sleep_hours
    deep_pct = rem_pct = None
    if duration is not None and duration > 0:
        if current.sleep_deep_hours is not None:
            deep_pct = current.sleep_deep_hours / duration * 100
        if current.sleep_rem_hours is not None:
            rem_pct = current.sleep_rem_hours / duration * 100

    efficiency = current.sleep_efficiency
    if efficiency is None and deep_pct is not None and rem_pct is not None:
        efficiency = min(100.0, deep_pct + rem_pct + 50)

    value, components = _blend([
        ("duration_score", None if duration is None else _interpolate(
            duration, [(5.0, 25), (7.0, 75), (8.5, 100)]), 0.40),
        ("deep_score", None if deep_pct is None else _interpolate(
            deep_pct, [(10, 40), (17.5, 100), (25, 80)]), 0.25),
        ("rem_score", None if rem_pct is None else _interpolate(
            rem_pct, [(15, 50), (22.5, 100), (30, 75)]), 0.20),
        ("efficiency_score", None if efficiency is None else _interpolate(
            efficiency, [(70, 33), (85, 80), (95, 100)]), 0.15),
    ])
    if deep_pct is not None:
        components["deep_percent"] = deep_pct
    if rem_pct is not None:
        components["rem_percent"] = rem_pct

    data_points = sum(v is not None for v in (duration, deep_pct, rem_pct, efficiency))
    return InsightMetric(
        kind=MetricKind.SLEEP_QUALITY,
        value=value,
        reliability=_reliability(data_points, 1, 3),
        components=components,
    )


def compute_sleep_debt(
    current: HealthSnapshot, base: Baselines, goals: GoalConfig
) -> InsightMetric:
    """Average nightly shortfall against the sleep target; 100 means no debt.

    Requires tonight's sleep; earlier nights come from the short window.
    """
    target = goals.sleep_target_hours
    if current.sleep_hours is None or target <= 0:
        return InsightMetric(kind=MetricKind.SLEEP_DEBT)
    nights = _with_current(base.short, current, base, "sleep_hours", current.sleep_hours)

    total_debt = sum(target - hours for hours in nights)
    nightly = total_debt / len(nights)
    value = _interpolate(nightly, [(0.0, 100), (1.0, 70), (2.5, 20), (4.0, 0)])

    return InsightMetric(
        kind=MetricKind.SLEEP_DEBT,
        value=_clamp(value),
        reliability=_reliability(len(nights), 3, 7),
        components={"debt_hours": total_debt, "nightly_deficit_hours": nightly},
    )


def compute_sleep_consistency(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """Night-to-night duration spread; needs tonight plus at least 4 earlier nights."""
    if current.sleep_hours is None or current.sleep_hours <= 0:
        return InsightMetric(kind=MetricKind.SLEEP_CONSISTENCY)
    nights = _with_current(base.consistency, current, base, "sleep_hours", current.sleep_hours)
    durations = [h for h in nights if h > 0]
    if len(durations) < 5:
        return InsightMetric(kind=MetricKind.SLEEP_CONSISTENCY)

    std_dev = statistics.pstdev(durations)
    value = _interpolate(std_dev, [(0.25, 100), (0.5, 90), (1.0, 70), (2.0, 40), (3.0, 20)])

    return InsightMetric(
        kind=MetricKind.SLEEP_CONSISTENCY,
        value=_clamp(value),
        reliability=_reliability(len(durations), 5, 10),
        components={"duration_std_dev_minutes": std_dev * 60},
    )


# ---------------------------------------------------------------------------
# Load / performance domain
# ---------------------------------------------------------------------------

def compute_training_strain(current: HealthSnapshot) -> InsightMetric:
    """Strain 0-10 scaled to 0-100."""
    strain = compute_strain(current.exercise_minutes, current.active_energy, current.workouts)
    if strain is None:
        return InsightMetric(kind=MetricKind.TRAINING_STRAIN)

    measured = current.exercise_minutes is not None or bool(current.workouts)
    return InsightMetric(
        kind=MetricKind.TRAINING_STRAIN,
        value=_clamp(strain * 10),
        reliability=Reliability.HIGH if measured else Reliability.MEDIUM,
        components={"strain": strain},
    )


def compute_load_balance(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """Acute:chronic workload ratio scored with a 0.8-1.3 sweet spot.

    Requires today's strain; the acute load is the last 7 days including today.
    """
    today = compute_strain(current.exercise_minutes, current.active_energy, current.workouts)
    if today is None:
        return InsightMetric(kind=MetricKind.LOAD_BALANCE)
    acute = [
        s for r in _earlier(base.acute, current, base)
        if (s := record_strain(r)) is not None
    ] + [today]
    chronic = [s for r in base.long if (s := record_strain(r)) is not None]
    if not chronic:
        return InsightMetric(kind=MetricKind.LOAD_BALANCE)

    acute_avg = sum(acute) / len(acute)
    chronic_avg = sum(chronic) / len(chronic)
    components = {"acute_7d": acute_avg, "chronic": chronic_avg}

    if chronic_avg > 0.1:
        acwr = acute_avg / chronic_avg
        components["acwr"] = acwr
        value = _interpolate(acwr, [
            (0.4, 40), (0.6, 60), (0.8, 85), (1.0, 95), (1.3, 85), (1.5, 50), (2.0, 20),
        ])
    else:
        # No chronic training load to compare against.
        value = 70.0

    return InsightMetric(
        kind=MetricKind.LOAD_BALANCE,
        value=_clamp(value),
        reliability=_reliability(sum(1 for s in chronic if s > 0), 7, 21),
        components=components,
    )


def compute_energy_forecast(
    current: HealthSnapshot, base: Baselines, readiness: InsightMetric
) -> InsightMetric:
    """Readiness 50%, sleep 20%, strain drain 15%, HRV vs baseline 15%."""
    strain = compute_strain(current.exercise_minutes, current.active_energy, current.workouts)
    hrv_ratio = _ratio(current.hrv, _short_hrv_baseline(current, base))

    value, components = _blend([
        ("readiness", readiness.value, 0.50),
        ("sleep_boost", None if current.sleep_hours is None else _interpolate(
            current.sleep_hours, [(5.0, 30), (7.0, 70), (9.0, 100)]), 0.20),
        ("strain_drain", None if strain is None else 100 - strain * 10, 0.15),
        ("hrv_boost", None if hrv_ratio is None else hrv_ratio * 100, 0.15),
    ])

    return InsightMetric(
        kind=MetricKind.ENERGY_FORECAST,
        value=value,
        reliability=_reliability(len(components), 1, 4),
        components=components,
    )


def compute_workout_readiness(
    readiness: InsightMetric, sleep: InsightMetric, nervous_system: InsightMetric
) -> InsightMetric:
    """Mean of recovery, sleep quality and nervous-system balance; needs 2 of 3."""
    parts = {
        "recovery": readiness.value,
        "sleep": sleep.value,
        "nervous_system": nervous_system.value,
    }
    present = {k: v for k, v in parts.items() if v is not None}
    if len(present) < 2:
        return InsightMetric(kind=MetricKind.WORKOUT_READINESS)

    return InsightMetric(
        kind=MetricKind.WORKOUT_READINESS,
        value=_clamp(sum(present.values()) / len(present)),
        reliability=_reliability(len(present), 1, 3),
        components=present,
    )


def compute_cardio_fitness_trend(current: HealthSnapshot, base: Baselines) -> InsightMetric:
    """Current VO2max vs its long baseline (60%) and absolute level (40%)."""
    if current.vo2max is None:
        return InsightMetric(kind=MetricKind.CARDIO_FITNESS_TREND)

    vo2_values = Baselines.values(base.long, "vo2max", positive=True)
    baseline = _mean(vo2_values)
    change = None
    if baseline is not None:
        change = (current.vo2max - baseline) / baseline * 100

    value, components = _blend([
        ("trend_score", None if change is None else _interpolate(
            change, [(-5, 30), (0, 60), (5, 90)]), 0.60),
        ("level_score", _interpolate(
            current.vo2max, [(25, 20), (35, 50), (45, 75), (55, 95)]), 0.40),
    ])
    if change is not None:
        components["percent_change"] = change

    return InsightMetric(
        kind=MetricKind.CARDIO_FITNESS_TREND,
        value=value,
        reliability=_reliability(len(vo2_values), 3, 10),
        trend=_trend(current.vo2max, baseline, threshold=0.02),
        components=components,
    )


# ---------------------------------------------------------------------------
# Habit domain
# ---------------------------------------------------------------------------

def compute_activity_score(
    current: HealthSnapshot, base: Baselines, goals: GoalConfig
) -> InsightMetric:
    """Steps vs long baseline (70%) and goal-hit consistency (30%).

    Requires a current step count. Without step history the goal stands in
    for the baseline.
    """
    if current.steps is None:
        return InsightMetric(kind=MetricKind.ACTIVITY_SCORE)

    step_history = Baselines.values(base.long, "steps", positive=True)
    baseline = _mean(step_history)
    if baseline is None and goals.steps > 0:
        baseline = goals.steps
    ratio = _ratio(current.steps, baseline)

    consistency = None
    recent_steps = Baselines.values(base.short, "steps")
    if recent_steps and goals.steps > 0:
        hits = sum(1 for s in recent_steps if s >= goals.steps)
        consistency = hits / len(recent_steps) * 100

    value, components = _blend([
        ("steps_ratio_score", None if ratio is None else min(100.0, ratio * 100), 0.70),
        ("consistency_score", consistency, 0.30),
    ])
    if ratio is not None:
        components["steps_ratio"] = ratio

    return InsightMetric(
        kind=MetricKind.ACTIVITY_SCORE,
        value=value if ratio is not None else None,
        reliability=_reliability(len(step_history), 14, 60),
        trend=_trend(current.steps, _mean(step_history)),
        components=components,
    )


def compute_daily_goals(current: HealthSnapshot, goals: GoalConfig) -> DailyGoalProgress:
    """Progress ratios per dimension; a zero goal yields an absent ratio."""

    def _progress(value: float | None, goal: float) -> float | None:
        if value is None or goal <= 0:
            return None
        return value / goal

    return DailyGoalProgress(
        steps=_progress(current.steps, goals.steps),
        active_energy=_progress(current.active_energy, goals.active_energy_kcal),
        exercise_minutes=_progress(current.exercise_minutes, goals.exercise_minutes),
        stand_hours=_progress(current.stand_hours, goals.stand_hours),
    )


# ---------------------------------------------------------------------------
# Main score
# ---------------------------------------------------------------------------

def compute_main_score(metrics: dict[MetricKind, InsightMetric]) -> float | None:
    """Weighted composite over present contributors; None below quorum."""
    total = 0.0
    weight_sum = 0.0
    present = 0
    for kind, weight in MAIN_SCORE_WEIGHTS.items():
        metric = metrics.get(kind)
        if metric is None or metric.value is None:
            continue
        total += metric.value * weight
        weight_sum += weight
        present += 1

    if present < MAIN_SCORE_QUORUM or weight_sum <= 0:
        return None
    return _clamp(total / weight_sum)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def score_snapshot(
    current: HealthSnapshot,
    baselines: Baselines,
    goals: GoalConfig | None = None,
) -> ScoreBundle:
    """Score one snapshot against already-resolved baselines."""
    goals = goals or DEFAULT_GOALS

    readiness = compute_recovery_readiness(current, baselines)
    sleep = compute_sleep_quality(current)
    nervous_system = compute_nervous_system_balance(current, baselines)

    metrics = {
        MetricKind.RECOVERY_READINESS: readiness,
        MetricKind.SLEEP_QUALITY: sleep,
        MetricKind.NERVOUS_SYSTEM_BALANCE: nervous_system,
        MetricKind.ENERGY_FORECAST: compute_energy_forecast(current, baselines, readiness),
        MetricKind.ACTIVITY_SCORE: compute_activity_score(current, baselines, goals),
        MetricKind.LOAD_BALANCE: compute_load_balance(current, baselines),
        MetricKind.STRESS_LOAD_INDEX: compute_stress_load_index(current, baselines, goals),
        MetricKind.MORNING_FRESHNESS: compute_morning_freshness(current, baselines),
        MetricKind.RECOVERY_DEBT: compute_recovery_debt(current, baselines),
        MetricKind.SLEEP_DEBT: compute_sleep_debt(current, baselines, goals),
        MetricKind.SLEEP_CONSISTENCY: compute_sleep_consistency(current, baselines),
        MetricKind.TRAINING_STRAIN: compute_training_strain(current),
        MetricKind.CARDIO_FITNESS_TREND: compute_cardio_fitness_trend(current, baselines),
        MetricKind.WORKOUT_READINESS: compute_workout_readiness(readiness, sleep, nervous_system),
    }

    return ScoreBundle(
        period=baselines.period,
        metrics=metrics,
        daily_goals=compute_daily_goals(current, goals),
        main_score=compute_main_score(metrics),
    )


def compute_scores(
    current: HealthSnapshot,
    history: list[DailyRecord],
    period: Period = Period.DAY,
    *,
    goals: GoalConfig | None = None,
    as_of: date | None = None,
) -> ScoreBundle:
    """Compute every sub-score and the main score for ``period``.

    This is the main entry point of the engine. ``history`` may be unsorted
    and is never mutated. The "now" value of each metric always comes from
    ``current``; history only feeds baselines.
    """
    period = Period.parse(period)
    baselines = compute_baselines(history, period, as_of=as_of or current.date)
    bundle = score_snapshot(current, baselines, goals)
    logger.debug(
        "Computed %s scores from %d history records (main_score present=%s)",
        period.value,
        len(baselines.records),
        bundle.main_score is not None,
    )
    return bundle

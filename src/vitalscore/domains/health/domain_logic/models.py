"""Health insight data model: raw inputs, sub-score results, and domain constants."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Period(str, Enum):
    """Aggregation window a score bundle is computed for."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: str | Period) -> Period:
        if isinstance(value, Period):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError("period must be one of: day | week | month") from None


class MetricKind(str, Enum):
    """Closed set of sub-score kinds produced by the metric engine."""

    RECOVERY_READINESS = "recovery_readiness"
    SLEEP_QUALITY = "sleep_quality"
    NERVOUS_SYSTEM_BALANCE = "nervous_system_balance"
    RECOVERY_DEBT = "recovery_debt"
    ENERGY_FORECAST = "energy_forecast"
    ACTIVITY_SCORE = "activity_score"
    LOAD_BALANCE = "load_balance"
    STRESS_LOAD_INDEX = "stress_load_index"
    MORNING_FRESHNESS = "morning_freshness"
    SLEEP_DEBT = "sleep_debt"
    SLEEP_CONSISTENCY = "sleep_consistency"
    TRAINING_STRAIN = "training_strain"
    CARDIO_FITNESS_TREND = "cardio_fitness_trend"
    WORKOUT_READINESS = "workout_readiness"


class Reliability(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT = "insufficient"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RangeLevel(str, Enum):
    """Five 20-point bands used for status labels."""

    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @classmethod
    def from_score(cls, score: float) -> RangeLevel:
        if score < 20:
            return cls.VERY_LOW
        if score < 40:
            return cls.LOW
        if score < 60:
            return cls.MEDIUM
        if score < 80:
            return cls.HIGH
        return cls.VERY_HIGH


# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Main score weights, renormalized over the sub-scores that are present.
MAIN_SCORE_WEIGHTS: dict[MetricKind, float] = {
    MetricKind.RECOVERY_READINESS: 0.25,
    MetricKind.SLEEP_QUALITY: 0.20,
    MetricKind.NERVOUS_SYSTEM_BALANCE: 0.20,
    MetricKind.ENERGY_FORECAST: 0.15,
    MetricKind.ACTIVITY_SCORE: 0.10,
    MetricKind.LOAD_BALANCE: 0.10,
}

# Minimum number of contributing sub-scores for a main score.
MAIN_SCORE_QUORUM = 2

# Trailing windows in days: (short baseline, consistency, long baseline).
PERIOD_WINDOWS: dict[Period, tuple[int, int, int]] = {
    Period.DAY: (7, 14, 28),
    Period.WEEK: (28, 28, 28),
    Period.MONTH: (90, 90, 90),
}

# Acute window for the acute:chronic workload ratio.
ACUTE_WINDOW_DAYS = 7

# Maximum history the engine is ever handed.
MAX_HISTORY_DAYS = 90

# Number of days kept in the rolling score history.
HISTORY_LENGTH = 7


# ---------------------------------------------------------------------------
# Raw inputs
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> float | None:
    """Convert to float, mapping None, non-numeric, NaN and inf to None.

    Integers too large for a float count as infinite.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _clamp_percent(value: float | None) -> float | None:
    if value is None:
        return None
    return max(0.0, min(100.0, value))


def _non_negative(value: float | None) -> float | None:
    if value is None:
        return None
    return max(0.0, value)


@dataclass
class WorkoutSummary:
    """One workout session as reported by the sample adapter."""

    kind: str = "other"
    duration_minutes: float | None = None
    energy_kcal: float | None = None
    avg_heart_rate: float | None = None
    max_heart_rate: float | None = None

    def __post_init__(self) -> None:
        self.duration_minutes = _non_negative(coerce_number(self.duration_minutes))
        self.energy_kcal = _non_negative(coerce_number(self.energy_kcal))
        self.avg_heart_rate = _non_negative(coerce_number(self.avg_heart_rate))
        self.max_heart_rate = _non_negative(coerce_number(self.max_heart_rate))

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> WorkoutSummary:
        return cls(
            kind=str(data.get("kind") or data.get("type") or "other"),
            duration_minutes=data.get("duration_minutes"),
            energy_kcal=data.get("energy_kcal"),
            avg_heart_rate=data.get("avg_heart_rate"),
            max_heart_rate=data.get("max_heart_rate"),
        )


_PERCENT_FIELDS = frozenset({
    "spo2",
    "sleep_efficiency",
    "body_fat_percentage",
    "walking_asymmetry",
    "walking_steadiness",
})

# Fields allowed to be negative (slopes).
_SIGNED_FIELDS = frozenset({"hrv_trend_slope"})


@dataclass
class HealthSnapshot:
    """One period's aggregate of raw samples. Every field is optional.

    ``None`` means "unmeasured" and is never treated as zero. Percent fields
    are clamped to [0, 100]; all other magnitudes are clamped to >= 0.
    """

    date: date | None = None

    # Activity
    steps: float | None = None
    distance_km: float | None = None
    active_energy: float | None = None
    basal_energy: float | None = None
    total_energy: float | None = None
    exercise_minutes: float | None = None
    stand_hours: float | None = None

    # Heart
    heart_rate: float | None = None
    resting_heart_rate: float | None = None
    walking_heart_rate: float | None = None
    hrv: float | None = None
    hrv_7d_baseline: float | None = None
    hrv_trend_slope: float | None = None
    heart_rate_recovery: float | None = None
    spo2: float | None = None
    blood_pressure_systolic: float | None = None
    blood_pressure_diastolic: float | None = None
    vo2max: float | None = None
    respiratory_rate: float | None = None

    # Sleep
    sleep_hours: float | None = None
    sleep_deep_hours: float | None = None
    sleep_rem_hours: float | None = None
    sleep_light_hours: float | None = None
    sleep_awake_minutes: float | None = None
    sleep_efficiency: float | None = None
    time_in_bed_hours: float | None = None

    # Body composition
    body_mass: float | None = None
    body_mass_index: float | None = None
    body_fat_percentage: float | None = None
    lean_body_mass: float | None = None

    # Gait
    walking_speed: float | None = None
    walking_step_length: float | None = None
    walking_asymmetry: float | None = None
    walking_steadiness: float | None = None

    # Nutrition
    dietary_energy: float | None = None
    dietary_protein: float | None = None
    dietary_carbohydrates: float | None = None
    dietary_fat: float | None = None
    blood_glucose: float | None = None

    workouts: list[WorkoutSummary] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.date = coerce_date(self.date)
        for name in _numeric_field_names():
            value = coerce_number(getattr(self, name))
            if name in _PERCENT_FIELDS:
                value = _clamp_percent(value)
            elif name not in _SIGNED_FIELDS:
                value = _non_negative(value)
            setattr(self, name, value)
        self.workouts = [
            w if isinstance(w, WorkoutSummary) else WorkoutSummary.from_mapping(w)
            for w in (self.workouts or [])
            if isinstance(w, (WorkoutSummary, dict))
        ]

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> HealthSnapshot:
        """Build a snapshot from a loose dict, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if not isinstance(kwargs.get("workouts", []), list):
            kwargs.pop("workouts")
        return cls(**kwargs)

    def present_values(self) -> dict[str, float]:
        """Return only the measured numeric fields."""
        return {
            name: getattr(self, name)
            for name in _numeric_field_names()
            if getattr(self, name) is not None
        }

    def is_empty(self) -> bool:
        return not self.present_values() and not self.workouts


def _numeric_field_names() -> list[str]:
    return [f.name for f in fields(HealthSnapshot) if f.name not in ("date", "workouts")]


@dataclass
class DailyRecord:
    """One calendar day of history. ``date`` is mandatory."""

    date: date
    steps: float | None = None
    hrv: float | None = None
    resting_heart_rate: float | None = None
    heart_rate_recovery: float | None = None
    sleep_hours: float | None = None
    sleep_deep_hours: float | None = None
    sleep_rem_hours: float | None = None
    sleep_light_hours: float | None = None
    active_energy: float | None = None
    exercise_minutes: float | None = None
    stand_hours: float | None = None
    vo2max: float | None = None

    def __post_init__(self) -> None:
        parsed = coerce_date(self.date)
        if parsed is None:
            raise ValueError(f"DailyRecord requires a valid date, got {self.date!r}")
        self.date = parsed
        for f in fields(self):
            if f.name != "date":
                setattr(self, f.name, _non_negative(coerce_number(getattr(self, f.name))))

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> DailyRecord:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_snapshot(self) -> HealthSnapshot:
        """Miniature snapshot carrying only this day's own values."""
        return HealthSnapshot(
            date=self.date,
            steps=self.steps,
            hrv=self.hrv,
            resting_heart_rate=self.resting_heart_rate,
            heart_rate_recovery=self.heart_rate_recovery,
            sleep_hours=self.sleep_hours,
            sleep_deep_hours=self.sleep_deep_hours,
            sleep_rem_hours=self.sleep_rem_hours,
            sleep_light_hours=self.sleep_light_hours,
            active_energy=self.active_energy,
            exercise_minutes=self.exercise_minutes,
            stand_hours=self.stand_hours,
            vo2max=self.vo2max,
        )


def sort_history(history: list[DailyRecord]) -> list[DailyRecord]:
    """Return history ordered oldest to newest with one record per date.

    When a date appears twice the later entry in the input wins.
    """
    by_date: dict[date, DailyRecord] = {}
    for record in history:
        by_date[record.date] = record
    return [by_date[d] for d in sorted(by_date)]


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GoalConfig:
    """Daily activity goals. Negative goals are rejected at construction."""

    steps: float = 8000.0
    active_energy_kcal: float = 500.0
    exercise_minutes: float = 30.0
    stand_hours: float = 12.0
    sleep_target_hours: float = 7.5

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or coerce_number(value) is None:
                raise ValueError(f"Goal {f.name!r} must be a number, got {value!r}")
            if value < 0:
                raise ValueError(f"Goal {f.name!r} must not be negative, got {value!r}")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class InsightMetric:
    """One named sub-score. ``value`` is None when inputs were insufficient."""

    kind: MetricKind
    value: float | None = None
    reliability: Reliability = Reliability.INSUFFICIENT
    trend: Trend | None = None
    components: dict[str, float] = field(default_factory=dict)

    @property
    def confidence(self) -> bool:
        return self.value is not None

    @property
    def level(self) -> RangeLevel | None:
        if self.value is None:
            return None
        return RangeLevel.from_score(self.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": None if self.value is None else round(self.value, 2),
            "confidence": self.confidence,
            "reliability": self.reliability.value,
            "trend": self.trend.value if self.trend else None,
            "components": {k: round(v, 4) for k, v in self.components.items()},
        }


@dataclass
class DailyGoalProgress:
    """Progress ratios (value / goal). Not a score; ratios may exceed 1."""

    steps: float | None = None
    active_energy: float | None = None
    exercise_minutes: float | None = None
    stand_hours: float | None = None

    @property
    def overall(self) -> float | None:
        ratios = [
            min(1.0, r)
            for r in (self.steps, self.active_energy, self.exercise_minutes, self.stand_hours)
            if r is not None
        ]
        if not ratios:
            return None
        return sum(ratios) / len(ratios)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": self.steps,
            "active_energy": self.active_energy,
            "exercise_minutes": self.exercise_minutes,
            "stand_hours": self.stand_hours,
            "overall": self.overall,
        }


# Breakdown wire payload version; bump when the field set or order changes.
BREAKDOWN_VERSION = 1

BREAKDOWN_FIELDS: tuple[tuple[str, MetricKind], ...] = (
    ("recovery", MetricKind.RECOVERY_READINESS),
    ("sleep", MetricKind.SLEEP_QUALITY),
    ("nervous_system", MetricKind.NERVOUS_SYSTEM_BALANCE),
    ("energy", MetricKind.ENERGY_FORECAST),
    ("activity", MetricKind.ACTIVITY_SCORE),
    ("load_balance", MetricKind.LOAD_BALANCE),
)


@dataclass
class ScoreBreakdown:
    """Main score plus six integer sub-scores handed to companion-device sync."""

    main_score: int | None = None
    recovery: int | None = None
    sleep: int | None = None
    nervous_system: int | None = None
    energy: int | None = None
    activity: int | None = None
    load_balance: int | None = None
    version: int = BREAKDOWN_VERSION

    def to_payload(self) -> dict[str, Any]:
        """Ordered wire payload. Field set and order are a versioned contract."""
        payload: dict[str, Any] = {"version": self.version, "main_score": self.main_score}
        for name, _ in BREAKDOWN_FIELDS:
            payload[name] = getattr(self, name)
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ScoreBreakdown:
        def _int(value: Any) -> int | None:
            number = coerce_number(value)
            return None if number is None else int(number)

        version = _int(payload.get("version"))
        return cls(
            main_score=_int(payload.get("main_score")),
            version=BREAKDOWN_VERSION if version is None else version,
            **{name: _int(payload.get(name)) for name, _ in BREAKDOWN_FIELDS},
        )


@dataclass
class ScoreBundle:
    """All sub-scores for one period plus the composite main score."""

    period: Period
    metrics: dict[MetricKind, InsightMetric]
    daily_goals: DailyGoalProgress = field(default_factory=DailyGoalProgress)
    main_score: float | None = None

    def get(self, kind: MetricKind) -> InsightMetric:
        return self.metrics.get(kind) or InsightMetric(kind=kind)

    def value(self, kind: MetricKind) -> float | None:
        return self.get(kind).value

    @property
    def status_level(self) -> RangeLevel | None:
        if self.main_score is None:
            return None
        return RangeLevel.from_score(self.main_score)

    def breakdown(self) -> ScoreBreakdown:
        def _rounded(value: float | None) -> int | None:
            return None if value is None else int(round(value))

        return ScoreBreakdown(
            main_score=_rounded(self.main_score),
            **{name: _rounded(self.value(kind)) for name, kind in BREAKDOWN_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period.value,
            "main_score": None if self.main_score is None else round(self.main_score, 2),
            "status_level": self.status_level.value if self.status_level else None,
            "metrics": {kind.value: m.to_dict() for kind, m in self.metrics.items()},
            "daily_goals": self.daily_goals.to_dict(),
        }


@dataclass
class DailyScoreEntry:
    """One day's scores in the rolling history.

    ``daily_goals`` is the overall goal progress scaled to 0-100.
    """

    date: date
    main_score: float | None = None
    scores: dict[MetricKind, float | None] = field(default_factory=dict)
    daily_goals: float | None = None

    def value(self, kind: MetricKind | str) -> float | None:
        if kind in ("main_score", "health_score"):
            return self.main_score
        if kind == "daily_goals":
            return self.daily_goals
        try:
            return self.scores.get(MetricKind(kind))
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "weekday": self.date.strftime("%a")[0],
            "main_score": None if self.main_score is None else round(self.main_score, 2),
            "scores": {
                k.value: None if v is None else round(v, 2) for k, v in self.scores.items()
            },
            "daily_goals": None if self.daily_goals is None else round(self.daily_goals, 2),
        }


@dataclass
class ScoreHistory:
    """Up to seven daily entries, oldest to newest. Derived, never persisted."""

    entries: list[DailyScoreEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def series(self, kind: MetricKind | str) -> list[tuple[date, float]]:
        """Present values for one kind, oldest first."""
        return [
            (entry.date, value)
            for entry in self.entries
            if (value := entry.value(kind)) is not None
        ]

    def to_dict(self) -> dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}

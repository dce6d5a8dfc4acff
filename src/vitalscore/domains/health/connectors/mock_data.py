"""Deterministic mock health data for development and testing.

The generated person is a median healthy adult: not in crisis, not perfectly
optimized. The same ``end`` date and ``seed`` always give the same records.
"""

from __future__ import annotations

import random
from datetime import date, timedelta

from vitalscore.domains.health.domain_logic.models import (
    DailyRecord,
    HealthSnapshot,
    Period,
    WorkoutSummary,
)

DEFAULT_SEED = 42


def generate_daily_records(
    days: int = 90,
    *,
    end: date | None = None,
    seed: int = DEFAULT_SEED,
) -> list[DailyRecord]:
    """Return ``days`` consecutive daily records ending at ``end``, oldest first."""
    end = end or date.today()
    rng = random.Random(f"{seed}:{end.isoformat()}")
    records = []
    for offset in range(days - 1, -1, -1):
        day = end - timedelta(days=offset)
        weekend = day.weekday() >= 5
        sleep = round(rng.gauss(7.6 if weekend else 7.0, 0.5), 2)
        exercise = max(0, round(rng.gauss(20 if weekend else 32, 12)))
        records.append(DailyRecord(
            date=day,
            steps=max(0, round(rng.gauss(6500 if weekend else 8800, 1500))),
            hrv=round(rng.gauss(44, 5), 1),
            resting_heart_rate=round(rng.gauss(62, 2), 1),
            heart_rate_recovery=round(rng.gauss(22, 3), 1),
            sleep_hours=sleep,
            sleep_deep_hours=round(sleep * rng.uniform(0.13, 0.20), 2),
            sleep_rem_hours=round(sleep * rng.uniform(0.18, 0.25), 2),
            sleep_light_hours=round(sleep * rng.uniform(0.50, 0.58), 2),
            active_energy=max(0, round(rng.gauss(480, 90))),
            exercise_minutes=exercise,
            stand_hours=min(16, max(0, round(rng.gauss(11, 2)))),
            vo2max=round(41.5 + rng.uniform(-0.4, 0.4), 1),
        ))
    return records


def _mean(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


def get_mock_snapshot(
    period: Period = Period.DAY,
    *,
    end: date | None = None,
    seed: int = DEFAULT_SEED,
) -> HealthSnapshot:
    """Return a mock snapshot for ``period``.

    Day uses the last generated record plus point-in-time vitals; Week and
    Month average the trailing 7 / 30 records.
    """
    end = end or date.today()
    window = {Period.DAY: 1, Period.WEEK: 7, Period.MONTH: 30}[Period.parse(period)]
    records = generate_daily_records(max(window, 7), end=end, seed=seed)
    recent = records[-window:]
    hrv_week = _mean([r.hrv for r in records[-8:-1]])

    def avg(name: str) -> float | None:
        return _mean([getattr(r, name) for r in recent])

    return HealthSnapshot(
        date=end,
        steps=avg("steps"),
        distance_km=None if avg("steps") is None else round(avg("steps") * 0.00075, 2),
        active_energy=avg("active_energy"),
        basal_energy=1650,
        exercise_minutes=avg("exercise_minutes"),
        stand_hours=avg("stand_hours"),
        heart_rate=71,
        resting_heart_rate=avg("resting_heart_rate"),
        walking_heart_rate=98,
        hrv=avg("hrv"),
        hrv_7d_baseline=hrv_week,
        heart_rate_recovery=avg("heart_rate_recovery"),
        spo2=97.2,
        blood_pressure_systolic=122,
        blood_pressure_diastolic=78,
        vo2max=avg("vo2max"),
        respiratory_rate=14.5,
        sleep_hours=avg("sleep_hours"),
        sleep_deep_hours=avg("sleep_deep_hours"),
        sleep_rem_hours=avg("sleep_rem_hours"),
        sleep_light_hours=avg("sleep_light_hours"),
        body_mass=74.0,
        body_mass_index=23.4,
        body_fat_percentage=19.5,
        walking_speed=1.32,
        walking_steadiness=92.0,
        workouts=[
            WorkoutSummary(kind="running", duration_minutes=32, energy_kcal=310,
                           avg_heart_rate=148, max_heart_rate=171),
        ] if period == Period.DAY else [],
    )

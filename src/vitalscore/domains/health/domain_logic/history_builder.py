"""Rolling 7-day score history, built off the primary scoring path.

The builder is pure: it returns a ``ScoreHistory`` and never touches the
cache. Callers stamp each request with a ``RefreshStamp`` and apply results
through a ``HistorySlot`` so late arrivals from an older refresh are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from vitalscore.core.storage.models import WeeklyStats
from vitalscore.domains.health.domain_logic.metric_engine import (
    compute_baselines,
    record_strain,
    score_snapshot,
)
from vitalscore.domains.health.domain_logic.models import (
    HISTORY_LENGTH,
    DailyRecord,
    DailyScoreEntry,
    GoalConfig,
    MetricKind,
    Period,
    ScoreHistory,
    sort_history,
)

logger = logging.getLogger(__name__)

# Sub-scores kept per history entry, for the 7-day detail charts.
HISTORY_KINDS: tuple[MetricKind, ...] = tuple(MetricKind)


def _trailing_days(records: list[DailyRecord]) -> list[DailyRecord]:
    if not records:
        return []
    newest = records[-1].date
    start = newest - timedelta(days=HISTORY_LENGTH - 1)
    return [r for r in records if r.date >= start]


def build_history(
    history: list[DailyRecord],
    goals: GoalConfig | None = None,
) -> ScoreHistory:
    """Score each of the trailing seven calendar days present in ``history``.

    Missing days are omitted, not interpolated. Baselines are resolved once
    from the full history and shared across all seven scorings; each day
    contributes only its own values as the "current" reading.
    """
    records = sort_history(history)
    days = _trailing_days(records)
    if not days:
        return ScoreHistory()

    baselines = compute_baselines(records, Period.DAY, as_of=days[-1].date)

    entries = []
    for record in days:
        bundle = score_snapshot(record.to_snapshot(), baselines, goals)
        goals_overall = bundle.daily_goals.overall
        entries.append(DailyScoreEntry(
            date=record.date,
            main_score=bundle.main_score,
            scores={kind: bundle.value(kind) for kind in HISTORY_KINDS},
            daily_goals=None if goals_overall is None else goals_overall * 100,
        ))

    logger.debug("Built score history with %d entries", len(entries))
    return ScoreHistory(entries=entries)


# ---------------------------------------------------------------------------
# Stamped background builds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RefreshStamp:
    """Identifies one refresh cycle. Higher ``sequence`` means newer."""

    sequence: int
    period: Period
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, object]:
        return {
            "sequence": self.sequence,
            "period": self.period.value,
            "requested_at": self.requested_at.isoformat(),
        }


@dataclass(frozen=True)
class StampedHistory:
    stamp: RefreshStamp
    history: ScoreHistory
    weekly_stats: WeeklyStats | None = None


async def build_history_async(
    history: list[DailyRecord],
    stamp: RefreshStamp,
    goals: GoalConfig | None = None,
) -> StampedHistory:
    """Run ``build_history`` on a worker thread and stamp the result.

    Weekly rollups are derived in the same pass. The input list is copied
    before handing it off so later mutation by the caller cannot leak into
    the build.
    """
    records = list(history)

    def _build() -> StampedHistory:
        result = build_history(records, goals)
        return StampedHistory(
            stamp=stamp,
            history=result,
            weekly_stats=compute_weekly_stats(records, result),
        )

    return await asyncio.to_thread(_build)


class HistorySlot:
    """Holds the most recently applied score history.

    ``apply`` is last-write-wins by stamp sequence: a result whose stamp is
    older than the one already applied is rejected. ``reset`` raises a
    floor, and results stamped at or below it are rejected as well, so a
    build that was still running at reset time cannot repopulate the slot.

    Usage::

        slot = HistorySlot()
        if slot.apply(stamped):
            render(slot.history)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: StampedHistory | None = None
        self._floor = 0

    def apply(self, stamped: StampedHistory) -> bool:
        with self._lock:
            if stamped.stamp.sequence <= self._floor:
                logger.warning(
                    "Dropping score history issued before reset (sequence %d <= %d)",
                    stamped.stamp.sequence,
                    self._floor,
                )
                return False
            if self._current is not None and stamped.stamp.sequence < self._current.stamp.sequence:
                logger.warning(
                    "Dropping stale score history (sequence %d < %d)",
                    stamped.stamp.sequence,
                    self._current.stamp.sequence,
                )
                return False
            self._current = stamped
            return True

    @property
    def current(self) -> StampedHistory | None:
        with self._lock:
            return self._current

    @property
    def history(self) -> ScoreHistory:
        current = self.current
        return current.history if current is not None else ScoreHistory()

    @property
    def floor(self) -> int:
        with self._lock:
            return self._floor

    def reset(self, floor: int | None = None) -> None:
        """Drop the applied history and reject every stamp up to ``floor``.

        ``floor`` defaults to the sequence of the applied history. Pass the
        highest sequence issued so far to also reject builds still in flight.
        """
        with self._lock:
            if floor is None:
                floor = self._current.stamp.sequence if self._current is not None else 0
            self._floor = max(self._floor, floor)
            self._current = None


# ---------------------------------------------------------------------------
# Weekly rollups
# ---------------------------------------------------------------------------

def _avg(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


def compute_weekly_stats(
    records: list[DailyRecord],
    score_history: ScoreHistory | None = None,
) -> WeeklyStats | None:
    """Seven-day averages of sleep, readiness, strain and HRV.

    Raw averages come from the trailing seven calendar days of ``records``;
    readiness comes from ``score_history``. Returns None when nothing in the
    window was measured.
    """
    days = _trailing_days(sort_history(records))

    sleep = [r.sleep_hours for r in days if r.sleep_hours is not None and r.sleep_hours > 0]
    hrv = [r.hrv for r in days if r.hrv is not None and r.hrv > 0]
    strain = [s for r in days if (s := record_strain(r)) is not None]
    readiness = []
    if score_history is not None:
        readiness = [v for _, v in score_history.series(MetricKind.RECOVERY_READINESS)]

    stats = WeeklyStats(
        avg_sleep_hours=_avg(sleep),
        avg_readiness=_avg(readiness),
        avg_strain=_avg(strain),
        avg_hrv=_avg(hrv),
    )
    return None if stats.is_empty() else stats

"""Refresh coordinator: primary scoring path plus the background history path.

The primary path computes the bundle and writes it to the result cache
before any history work is scheduled. The history path runs as a separate
task whose stamped result the caller applies when it arrives.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass

from vitalscore.core.storage.result_cache import ResultCache
from vitalscore.domains.health.connectors import AdapterError, HealthDataProvider
from vitalscore.domains.health.domain_logic.content_hash import compute_content_hash
from vitalscore.domains.health.domain_logic.history_builder import (
    HistorySlot,
    RefreshStamp,
    StampedHistory,
    build_history_async,
)
from vitalscore.domains.health.domain_logic.metric_engine import compute_scores
from vitalscore.domains.health.domain_logic.models import (
    MAX_HISTORY_DAYS,
    DailyRecord,
    GoalConfig,
    HealthSnapshot,
    Period,
    ScoreBundle,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one primary refresh."""

    stamp: RefreshStamp
    bundle: ScoreBundle
    content_hash: str

    def to_dict(self) -> dict[str, object]:
        return {
            "stamp": self.stamp.to_dict(),
            "content_hash": self.content_hash,
            **self.bundle.to_dict(),
        }


class ScoreRefresher:
    """Runs refresh cycles against one injected ``ResultCache``.

    Usage::

        refresher = ScoreRefresher(cache, goals)
        result, task = await refresher.refresh_async(snapshot, history)
        # primary score is already cached here
        refresher.apply_history(await task)
    """

    def __init__(
        self,
        cache: ResultCache,
        goals: GoalConfig | None = None,
        *,
        slot: HistorySlot | None = None,
    ) -> None:
        self._cache = cache
        self._goals = goals or GoalConfig()
        self._slot = slot or HistorySlot()
        self._sequence = itertools.count(1)
        self._last_sequence = 0
        self._sequence_lock = threading.Lock()
        self._publish_lock = threading.Lock()

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def goals(self) -> GoalConfig:
        return self._goals

    @property
    def slot(self) -> HistorySlot:
        return self._slot

    def next_stamp(self, period: Period | str = Period.DAY) -> RefreshStamp:
        with self._sequence_lock:
            sequence = next(self._sequence)
            self._last_sequence = sequence
        return RefreshStamp(sequence=sequence, period=Period.parse(period))

    # ------------------------------------------------------------------
    # Primary path
    # ------------------------------------------------------------------

    def refresh(
        self,
        snapshot: HealthSnapshot,
        history: list[DailyRecord],
        period: Period | str = Period.DAY,
        *,
        stamp: RefreshStamp | None = None,
    ) -> RefreshResult:
        """Compute scores and cache them.

        The main score and the Day breakdown are written together, and only
        when a main score is present. An insufficient-data result leaves the
        previous pair untouched, so the cached main score always matches the
        cached breakdown from the same refresh.
        """
        period = Period.parse(period)
        stamp = stamp or self.next_stamp(period)

        bundle = compute_scores(snapshot, history, period, goals=self._goals)
        if bundle.main_score is not None:
            self._cache.save_scores(bundle.main_score, bundle.breakdown(), period)

        logger.info(
            "Refresh %d (%s) cached; main score %s",
            stamp.sequence,
            period.value,
            "present" if bundle.main_score is not None else "unavailable",
        )
        return RefreshResult(
            stamp=stamp,
            bundle=bundle,
            content_hash=compute_content_hash(snapshot),
        )

    # ------------------------------------------------------------------
    # Background path
    # ------------------------------------------------------------------

    async def refresh_async(
        self,
        snapshot: HealthSnapshot,
        history: list[DailyRecord],
        period: Period | str = Period.DAY,
    ) -> tuple[RefreshResult, asyncio.Task[StampedHistory]]:
        """Primary refresh, then schedule the history build as a task.

        The returned task resolves to a ``StampedHistory``; pass it to
        ``apply_history`` when it completes.
        """
        result = self.refresh(snapshot, history, period)
        task = asyncio.create_task(
            build_history_async(history, result.stamp, self._goals),
            name=f"score-history-{result.stamp.sequence}",
        )
        return result, task

    async def refresh_from_provider(
        self,
        provider: HealthDataProvider,
        period: Period | str = Period.DAY,
        *,
        days: int = MAX_HISTORY_DAYS,
    ) -> tuple[RefreshResult, asyncio.Task[StampedHistory]]:
        """Pull inputs from ``provider`` and refresh.

        An ``AdapterError`` is not fatal: the failing input is replaced with
        an empty snapshot or history and the refresh continues.
        """
        period = Period.parse(period)
        try:
            snapshot = await provider.get_snapshot(period)
        except AdapterError as exc:
            logger.warning("Snapshot fetch failed (%s): %s", provider.data_source, exc)
            snapshot = HealthSnapshot()
        try:
            history = await provider.get_daily_records(days)
        except AdapterError as exc:
            logger.warning("History fetch failed (%s): %s", provider.data_source, exc)
            history = []
        return await self.refresh_async(snapshot, history, period)

    def apply_history(self, stamped: StampedHistory) -> bool:
        """Publish a finished history build unless a newer one was applied.

        Builds stamped before the last ``reset`` are dropped.
        """
        with self._publish_lock:
            if not self._slot.apply(stamped):
                return False
            if stamped.weekly_stats is not None:
                self._cache.save_weekly_stats(stamped.weekly_stats)
        logger.debug(
            "Applied score history %d (%d entries)",
            stamped.stamp.sequence,
            len(stamped.history),
        )
        return True

    def reset(self) -> None:
        """Clear the result cache and the applied history.

        Every stamp issued so far is fenced off, so history builds still
        running cannot write their results back afterwards.
        """
        with self._sequence_lock:
            floor = self._last_sequence
        with self._publish_lock:
            self._cache.clear()
            self._slot.reset(floor)
        logger.info("Refresher reset; score history up to sequence %d will be rejected", floor)

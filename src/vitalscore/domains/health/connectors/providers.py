"""Concrete HealthDataProvider implementations."""

from __future__ import annotations

import logging
from datetime import date

from vitalscore.domains.health.connectors import AdapterError, HealthDataProvider
from vitalscore.domains.health.connectors.mock_data import (
    DEFAULT_SEED,
    generate_daily_records,
    get_mock_snapshot,
)
from vitalscore.domains.health.domain_logic.models import (
    MAX_HISTORY_DAYS,
    DailyRecord,
    HealthSnapshot,
    Period,
    sort_history,
)

logger = logging.getLogger(__name__)


class MockHealthDataProvider:
    """Uses the deterministic mock generator. Always available."""

    def __init__(self, *, end: date | None = None, seed: int = DEFAULT_SEED) -> None:
        self._end = end
        self._seed = seed

    async def get_snapshot(self, period: Period = Period.DAY) -> HealthSnapshot:
        return get_mock_snapshot(Period.parse(period), end=self._end, seed=self._seed)

    async def get_daily_records(self, days: int = MAX_HISTORY_DAYS) -> list[DailyRecord]:
        days = max(0, min(days, MAX_HISTORY_DAYS))
        return generate_daily_records(days, end=self._end, seed=self._seed)

    def is_connected(self) -> bool:
        return False

    @property
    def data_source(self) -> str:
        return "mock"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": (
                "Using simulated health data. "
                "Push real samples with refresh_scores for real measurements."
            ),
        }


class StaticHealthDataProvider:
    """Serves the most recent caller-supplied snapshot and history.

    Tools that receive already-fetched samples push them here with
    ``update`` so later refreshes can read them back.
    """

    def __init__(
        self,
        snapshot: HealthSnapshot | None = None,
        records: list[DailyRecord] | None = None,
    ) -> None:
        self._snapshot = snapshot
        self._records = sort_history(records or [])

    def update(
        self,
        snapshot: HealthSnapshot | None = None,
        records: list[DailyRecord] | None = None,
    ) -> None:
        if snapshot is not None:
            self._snapshot = snapshot
        if records is not None:
            self._records = sort_history(records)

    async def get_snapshot(self, period: Period = Period.DAY) -> HealthSnapshot:
        if self._snapshot is None:
            raise AdapterError("No snapshot has been supplied")
        return self._snapshot

    async def get_daily_records(self, days: int = MAX_HISTORY_DAYS) -> list[DailyRecord]:
        if days <= 0:
            return []
        return list(self._records[-days:])

    def is_connected(self) -> bool:
        return self._snapshot is not None

    @property
    def data_source(self) -> str:
        return "static"

    def get_provenance(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "data_source_note": (
                f"Caller-supplied samples ({len(self._records)} daily records)."
            ),
        }


class CompositeHealthDataProvider:
    """Merges multiple HealthDataProviders with priority ordering.

    Each call queries providers in order and returns the first non-empty
    result. A provider raising ``AdapterError`` is skipped. When every
    provider fails or is empty, the last error is re-raised (or an empty
    result returned if none failed).

    Usage::

        composite = CompositeHealthDataProvider([
            static_provider,  # Highest priority
            mock_provider,    # Fallback
        ])
        snapshot = await composite.get_snapshot(Period.WEEK)
    """

    def __init__(self, providers: list[HealthDataProvider]) -> None:
        if not providers:
            raise ValueError("At least one provider is required")
        self._providers = providers

    async def get_snapshot(self, period: Period = Period.DAY) -> HealthSnapshot:
        last_error: AdapterError | None = None
        for provider in self._providers:
            try:
                snapshot = await provider.get_snapshot(period)
            except AdapterError as exc:
                logger.debug("Provider %s has no snapshot: %s", provider.data_source, exc)
                last_error = exc
                continue
            if not snapshot.is_empty():
                return snapshot
        if last_error is not None:
            raise last_error
        return HealthSnapshot()

    async def get_daily_records(self, days: int = MAX_HISTORY_DAYS) -> list[DailyRecord]:
        last_error: AdapterError | None = None
        for provider in self._providers:
            try:
                records = await provider.get_daily_records(days)
            except AdapterError as exc:
                logger.debug("Provider %s has no history: %s", provider.data_source, exc)
                last_error = exc
                continue
            if records:
                return records
        if last_error is not None:
            raise last_error
        return []

    def is_connected(self) -> bool:
        """True if any provider is connected."""
        return any(p.is_connected() for p in self._providers)

    @property
    def data_source(self) -> str:
        """Data source of the first connected provider, else the fallback's."""
        for provider in self._providers:
            if provider.is_connected():
                return provider.data_source
        return self._providers[-1].data_source

    def get_provenance(self) -> dict[str, str]:
        active = [p.data_source for p in self._providers if p.is_connected()]
        return {
            "data_source": self.data_source,
            "active_sources": ", ".join(active) if active else "none",
            "data_source_note": (
                f"Composite provider with {len(active)} active source(s). "
                f"Priority: {' > '.join(p.data_source for p in self._providers)}."
            ),
        }

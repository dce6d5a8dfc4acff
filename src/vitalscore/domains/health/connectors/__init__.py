"""Raw-sample adapters: the boundary where already-fetched health data enters."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vitalscore.domains.health.domain_logic.models import DailyRecord, HealthSnapshot, Period


class AdapterError(Exception):
    """Raised by an adapter when raw samples could not be fetched."""


@runtime_checkable
class HealthDataProvider(Protocol):
    """Abstract interface for raw health sample retrieval.

    The refresh coordinator calls these methods without knowing whether data
    comes from a device export, a caller-supplied payload, or a mock
    generator. Failures are reported as ``AdapterError``.
    """

    async def get_snapshot(self, period: Period = Period.DAY) -> HealthSnapshot:
        """Aggregate of raw samples for the requested period."""
        ...

    async def get_daily_records(self, days: int = 90) -> list[DailyRecord]:
        """Up to ``days`` daily records, oldest to newest."""
        ...

    def is_connected(self) -> bool:
        """Whether real health data is available."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source, e.g. 'static' or 'mock'."""
        ...

    def get_provenance(self) -> dict[str, str]:
        """Return provenance metadata for tool responses."""
        ...

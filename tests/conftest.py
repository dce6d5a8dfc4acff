"""Shared test fixtures for Vitalscore tests."""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    for name in (
        "GOAL_STEPS",
        "GOAL_ACTIVE_ENERGY_KCAL",
        "GOAL_EXERCISE_MINUTES",
        "GOAL_STAND_HOURS",
        "SLEEP_TARGET_HOURS",
    ):
        monkeypatch.delenv(name, raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitalscore.core.storage.codec import ValueCodec  # noqa: E402
from vitalscore.core.storage.database import CacheDatabase  # noqa: E402
from vitalscore.core.storage.kv_store import (  # noqa: E402
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
)
from vitalscore.core.storage.result_cache import ResultCache  # noqa: E402
from vitalscore.domains.health.domain_logic.models import DailyRecord  # noqa: E402

TODAY = date(2026, 3, 14)


def run_async(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_history(
    days: int = 28,
    *,
    end: date = TODAY,
    hrv: float = 48.0,
    resting_heart_rate: float = 60.0,
    sleep_hours: float = 7.5,
    steps: float = 9000,
    exercise_minutes: float = 30,
    **overrides,
) -> list[DailyRecord]:
    """Flat history ending at ``end`` (inclusive), oldest first."""
    return [
        DailyRecord(
            date=end - timedelta(days=offset),
            hrv=hrv,
            resting_heart_rate=resting_heart_rate,
            sleep_hours=sleep_hours,
            steps=steps,
            exercise_minutes=exercise_minutes,
            **overrides,
        )
        for offset in range(days - 1, -1, -1)
    ]


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cache_db():
    """Create an in-memory CacheDatabase for testing."""
    db = CacheDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def sqlite_store(cache_db: CacheDatabase) -> SQLiteKeyValueStore:
    return SQLiteKeyValueStore(cache_db)


@pytest.fixture
def encrypted_codec() -> ValueCodec:
    """Create a ValueCodec with a freshly generated Fernet key."""
    return ValueCodec(ValueCodec.generate_key())


@pytest.fixture
def result_cache(memory_store: InMemoryKeyValueStore) -> ResultCache:
    return ResultCache(memory_store, ValueCodec())


@pytest.fixture
def encrypted_cache(sqlite_store: SQLiteKeyValueStore, encrypted_codec: ValueCodec) -> ResultCache:
    return ResultCache(sqlite_store, encrypted_codec)


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_history() -> list[DailyRecord]:
    """28 days of steady history averaging HRV 48 ms and RHR 60 bpm."""
    return make_history()

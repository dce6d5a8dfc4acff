"""Result cache: the single source of truth for computed and narrative state.

Every cached field lives under one stable key in an injected
``KeyValueStore``. Each save replaces its whole record in one store write,
so readers see either the previous or the new record, never a mix.
Malformed persisted entries are logged and reported as absent.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, TypeVar

from vitalscore.core.storage.codec import CodecError, ValueCodec
from vitalscore.core.storage.kv_store import KeyValueStore
from vitalscore.core.storage.models import (
    CachedMainScore,
    CachedResult,
    ExternalNarrative,
    PendingReveal,
    RecordFormatError,
    WeeklyStats,
)
from vitalscore.domains.health.domain_logic.models import (
    Period,
    RangeLevel,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Persisted key layout
# ---------------------------------------------------------------------------

KEY_MAIN_SCORE = "insights.main_score"
KEY_SCORE_BREAKDOWN = "insights.score_breakdown"
KEY_EXTERNAL_NARRATIVE = "insights.external_narrative"
KEY_PENDING_REVEAL = "insights.pending_reveal"
KEY_WEEKLY_STATS = "insights.weekly_stats"

CACHE_KEYS: tuple[str, ...] = (
    KEY_MAIN_SCORE,
    KEY_SCORE_BREAKDOWN,
    KEY_EXTERNAL_NARRATIVE,
    KEY_PENDING_REVEAL,
    KEY_WEEKLY_STATS,
)

# A narrative older than this is shown but no longer counts as fresh.
NARRATIVE_MAX_AGE = timedelta(hours=24)

# Regeneration gate: minimum days since the last narrative and minimum
# relative HRV change against the cached weekly average.
SIGNIFICANT_CHANGE_MIN_DAYS = 3
SIGNIFICANT_HRV_CHANGE = 0.10


def normalize_name(name: str) -> str:
    """Normalize a narrative name for change detection.

    ``"Porsche Taycan (2024)"``, ``"porsche-taycan"`` and ``"Porsche_Taycan"``
    all normalize to ``"porsche taycan"``.
    """
    normalized = name.strip().lower()
    if "(" in normalized:
        normalized = normalized[: normalized.index("(")]
    normalized = normalized.replace("-", " ").replace("_", " ")
    return re.sub(r"\s+", " ", normalized).strip()


def default_status(score: float) -> str:
    """Status label key for a main score, e.g. ``score.description.high``."""
    return f"score.description.{RangeLevel.from_score(score).value}"


class ResultCache:
    """Concurrent-safe cache of the last computed result.

    Constructed once by the composition root and injected wherever needed.
    Never calls out to a narrative service; collaborators write their
    results here.

    Usage::

        cache = ResultCache(InMemoryKeyValueStore(), ValueCodec())
        cache.save_main_score(74.0)
        cache.load_main_score().status  # "score.description.high"
    """

    def __init__(
        self,
        store: KeyValueStore,
        codec: ValueCodec | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._codec = codec or ValueCodec()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    # ------------------------------------------------------------------
    # Encoding helpers
    # ------------------------------------------------------------------

    def _encode(self, payload: dict[str, Any]) -> str:
        return self._codec.encode(payload)

    def _decode(self, key: str, raw: str | None, parse: Callable[[Any], T]) -> T | None:
        if raw is None:
            return None
        try:
            return parse(self._codec.decode(raw))
        except (CodecError, RecordFormatError) as exc:
            logger.warning("Ignoring corrupt cache entry %s: %s", key, exc)
            return None

    def _load(self, key: str, parse: Callable[[Any], T]) -> T | None:
        return self._decode(key, self._store.get(key), parse)

    # ------------------------------------------------------------------
    # Main score and breakdown
    # ------------------------------------------------------------------

    def _main_score_record(self, score: float, status: str | None) -> CachedMainScore:
        score = max(0.0, min(100.0, float(score)))
        return CachedMainScore(
            score=score,
            status=status or default_status(score),
            saved_at=self._now_iso(),
        )

    def save_main_score(self, score: float, status: str | None = None) -> CachedMainScore:
        """Replace the cached main score. ``status`` defaults to its range label."""
        record = self._main_score_record(score, status)
        with self._lock:
            self._store.set(KEY_MAIN_SCORE, self._encode(record.to_dict()))
        return record

    def load_main_score(self) -> CachedMainScore | None:
        return self._load(KEY_MAIN_SCORE, CachedMainScore.from_dict)

    def save_score_breakdown(
        self,
        breakdown: ScoreBreakdown,
        period: Period | str = Period.DAY,
    ) -> bool:
        """Replace the cached device-sync breakdown.

        Only Day breakdowns are written; other periods are skipped and
        ``False`` is returned.
        """
        period = Period.parse(period)
        if period is not Period.DAY:
            logger.debug("Skipping score breakdown for %s period", period.value)
            return False
        with self._lock:
            self._store.set(KEY_SCORE_BREAKDOWN, self._encode(breakdown.to_payload()))
        return True

    def load_score_breakdown(self) -> ScoreBreakdown | None:
        return self._load(KEY_SCORE_BREAKDOWN, _parse_breakdown)

    def save_scores(
        self,
        score: float,
        breakdown: ScoreBreakdown,
        period: Period | str = Period.DAY,
        status: str | None = None,
    ) -> CachedMainScore:
        """Replace the main score and, for Day, the breakdown in one store batch.

        Readers see both records from the same refresh or neither.
        """
        period = Period.parse(period)
        record = self._main_score_record(score, status)
        sets = {KEY_MAIN_SCORE: self._encode(record.to_dict())}
        if period is Period.DAY:
            sets[KEY_SCORE_BREAKDOWN] = self._encode(breakdown.to_payload())
        with self._lock:
            self._store.apply(sets=sets)
        return record

    # ------------------------------------------------------------------
    # External narrative
    # ------------------------------------------------------------------

    def save_external_narrative(
        self,
        name: str,
        secondary_name: str,
        explanation: str,
        content_hash: str,
        score: float | None = None,
    ) -> ExternalNarrative:
        """Store a narrative verbatim, replacing the current one."""
        record = ExternalNarrative(
            name=name,
            secondary_name=secondary_name,
            explanation=explanation,
            content_hash=content_hash,
            score=score,
            saved_at=self._now_iso(),
        )
        with self._lock:
            self._store.set(KEY_EXTERNAL_NARRATIVE, self._encode(record.to_dict()))
        return record

    def load_external_narrative(self) -> ExternalNarrative | None:
        return self._load(KEY_EXTERNAL_NARRATIVE, ExternalNarrative.from_dict)

    def is_narrative_stale(self, content_hash: str) -> bool:
        """True when no narrative covers ``content_hash``.

        A staged reveal generated from the same inputs counts as covering it.
        """
        with self._lock:
            narrative = self.load_external_narrative()
            pending = self.peek_pending_reveal()
        if pending is not None and pending.content_hash == content_hash:
            return False
        return narrative is None or narrative.content_hash != content_hash

    def should_request_narrative(self, content_hash: str, *, force: bool = False) -> bool:
        """Whether the narrative collaborator should be asked for a new narrative."""
        return force or self.is_narrative_stale(content_hash)

    def _age(self, saved_at: str) -> timedelta | None:
        try:
            saved = datetime.fromisoformat(saved_at)
        except ValueError:
            return None
        if saved.tzinfo is None:
            saved = saved.replace(tzinfo=timezone.utc)
        return self._clock() - saved

    def load_valid_narrative(
        self, max_age: timedelta = NARRATIVE_MAX_AGE
    ) -> ExternalNarrative | None:
        """The current narrative if it was saved within ``max_age``.

        ``load_external_narrative`` returns the latest narrative regardless
        of age, for display; this is the freshness-gated read.
        """
        narrative = self.load_external_narrative()
        if narrative is None:
            return None
        age = self._age(narrative.saved_at)
        if age is None or age > max_age:
            return None
        return narrative

    def has_significant_change(self, current_hrv: float | None) -> bool:
        """Whether the data moved enough since the last narrative to justify a new one.

        Both must hold: at least ``SIGNIFICANT_CHANGE_MIN_DAYS`` since the
        current narrative was saved, and HRV at least 10% away from the
        cached weekly average. With no weekly stats or no dated narrative
        there is nothing to compare against and the answer is True.
        """
        with self._lock:
            stats = self.load_weekly_stats()
            narrative = self.load_external_narrative()
        if stats is None or narrative is None:
            return True
        age = self._age(narrative.saved_at)
        if age is None:
            return True
        if age < timedelta(days=SIGNIFICANT_CHANGE_MIN_DAYS):
            return False
        if current_hrv is None or not stats.avg_hrv:
            return False
        change = abs(current_hrv - stats.avg_hrv) / stats.avg_hrv
        return change >= SIGNIFICANT_HRV_CHANGE

    def offer_narrative(
        self,
        name: str,
        secondary_name: str,
        explanation: str,
        content_hash: str,
        score: float | None = None,
    ) -> str:
        """Accept a freshly generated narrative, staging it when it changes identity.

        Returns one of:
            ``"staged"``: a different narrative is current, so the new one
            waits as a pending reveal.
            ``"already_pending"``: the same narrative is already staged.
            ``"saved"``: no current narrative, or the same identity; saved
            as current.
        """
        with self._lock:
            pending = self.peek_pending_reveal()
            if pending is not None and normalize_name(pending.new_name) == normalize_name(name):
                return "already_pending"

            current = self.load_external_narrative()
            if current is not None:
                same_name = normalize_name(current.name) == normalize_name(name)
                same_secondary = bool(current.secondary_name and secondary_name) and (
                    normalize_name(current.secondary_name) == normalize_name(secondary_name)
                )
                if not same_name and not same_secondary:
                    self.stage_pending_reveal(
                        name,
                        secondary_name,
                        explanation,
                        previous_name=current.name,
                        content_hash=content_hash,
                    )
                    return "staged"

            self.save_external_narrative(name, secondary_name, explanation, content_hash, score)
            return "saved"

    # ------------------------------------------------------------------
    # Pending reveal
    # ------------------------------------------------------------------

    def stage_pending_reveal(
        self,
        new_name: str,
        new_secondary_name: str,
        explanation: str,
        previous_name: str,
        content_hash: str = "",
    ) -> PendingReveal:
        """Stage a reveal without touching the currently shown narrative."""
        record = PendingReveal(
            new_name=new_name,
            new_secondary_name=new_secondary_name,
            explanation=explanation,
            previous_name=previous_name,
            content_hash=content_hash,
            staged_at=self._now_iso(),
        )
        with self._lock:
            self._store.set(KEY_PENDING_REVEAL, self._encode(record.to_dict()))
        logger.info("Staged pending narrative reveal")
        return record

    def peek_pending_reveal(self) -> PendingReveal | None:
        return self._load(KEY_PENDING_REVEAL, PendingReveal.from_dict)

    def has_pending_reveal(self) -> bool:
        return self.peek_pending_reveal() is not None

    def consume_pending_reveal(self) -> PendingReveal | None:
        """Return the staged reveal once, promoting it to the current narrative.

        Promotion and removal of the staged record happen in one store batch.
        Returns None when nothing is staged.
        """
        with self._lock:
            raw = self._store.get(KEY_PENDING_REVEAL)
            if raw is None:
                return None
            pending = self._decode(KEY_PENDING_REVEAL, raw, PendingReveal.from_dict)
            if pending is None:
                self._store.delete(KEY_PENDING_REVEAL)
                return None

            content_hash = pending.content_hash
            if not content_hash:
                current = self.load_external_narrative()
                content_hash = current.content_hash if current is not None else ""

            promoted = ExternalNarrative(
                name=pending.new_name,
                secondary_name=pending.new_secondary_name,
                explanation=pending.explanation,
                content_hash=content_hash,
                saved_at=self._now_iso(),
            )
            self._store.apply(
                sets={KEY_EXTERNAL_NARRATIVE: self._encode(promoted.to_dict())},
                deletes=[KEY_PENDING_REVEAL],
            )
        logger.info("Promoted pending narrative reveal")
        return pending

    # ------------------------------------------------------------------
    # Weekly rollups
    # ------------------------------------------------------------------

    def save_weekly_stats(self, stats: WeeklyStats) -> None:
        with self._lock:
            self._store.set(KEY_WEEKLY_STATS, self._encode(stats.to_dict()))

    def load_weekly_stats(self) -> WeeklyStats | None:
        return self._load(KEY_WEEKLY_STATS, WeeklyStats.from_dict)

    # ------------------------------------------------------------------
    # Whole-cache operations
    # ------------------------------------------------------------------

    def snapshot(self) -> CachedResult:
        """Read every cached field in one consistent pass."""
        with self._lock:
            raw = self._store.get_many(CACHE_KEYS)
        return CachedResult(
            main_score=self._decode(
                KEY_MAIN_SCORE, raw.get(KEY_MAIN_SCORE), CachedMainScore.from_dict
            ),
            breakdown=self._decode(
                KEY_SCORE_BREAKDOWN,
                raw.get(KEY_SCORE_BREAKDOWN),
                _parse_breakdown,
            ),
            narrative=self._decode(
                KEY_EXTERNAL_NARRATIVE,
                raw.get(KEY_EXTERNAL_NARRATIVE),
                ExternalNarrative.from_dict,
            ),
            pending_reveal=self._decode(
                KEY_PENDING_REVEAL, raw.get(KEY_PENDING_REVEAL), PendingReveal.from_dict
            ),
            weekly_stats=self._decode(
                KEY_WEEKLY_STATS, raw.get(KEY_WEEKLY_STATS), WeeklyStats.from_dict
            ),
        )

    def clear(self) -> None:
        """Remove exactly the cache's key set."""
        with self._lock:
            self._store.apply(deletes=CACHE_KEYS)
        logger.info("Result cache cleared")


def _parse_breakdown(data: Any) -> ScoreBreakdown:
    if not isinstance(data, dict):
        raise RecordFormatError("score_breakdown payload must be an object")
    return ScoreBreakdown.from_payload(data)

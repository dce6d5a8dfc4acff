"""Records held by the result cache.

Each record maps to exactly one persisted key and round-trips through a
plain dict so it can be JSON-encoded by ``ValueCodec``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from vitalscore.domains.health.domain_logic.models import ScoreBreakdown, coerce_number


class RecordFormatError(ValueError):
    """Raised when a persisted payload does not have the expected shape."""


def _require_mapping(data: Any, name: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise RecordFormatError(f"{name} payload must be an object, got {type(data).__name__}")
    return data


def _require_str(data: dict[str, Any], key: str, *, default: str | None = None) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise RecordFormatError(f"Field {key!r} must be a string")
    return value


@dataclass
class CachedMainScore:
    """Last main score plus its status label."""

    score: float
    status: str
    saved_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> CachedMainScore:
        data = _require_mapping(data, "main_score")
        score = coerce_number(data.get("score"))
        if score is None:
            raise RecordFormatError("main_score.score must be a number")
        return cls(
            score=score,
            status=_require_str(data, "status"),
            saved_at=_require_str(data, "saved_at", default=""),
        )


@dataclass
class ExternalNarrative:
    """Narrative produced by an external collaborator, stored verbatim.

    ``secondary_name`` is a wiki-key style identifier (e.g. ``Porsche_Taycan``).
    ``content_hash`` fingerprints the inputs that justified the narrative.
    """

    name: str
    secondary_name: str
    explanation: str
    content_hash: str
    score: float | None = None
    saved_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> ExternalNarrative:
        data = _require_mapping(data, "external_narrative")
        return cls(
            name=_require_str(data, "name"),
            secondary_name=_require_str(data, "secondary_name"),
            explanation=_require_str(data, "explanation"),
            content_hash=_require_str(data, "content_hash"),
            score=coerce_number(data.get("score")),
            saved_at=_require_str(data, "saved_at", default=""),
        )


@dataclass
class PendingReveal:
    """A staged narrative change not yet shown to the user."""

    new_name: str
    new_secondary_name: str
    explanation: str
    previous_name: str
    content_hash: str = ""
    staged_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> PendingReveal:
        data = _require_mapping(data, "pending_reveal")
        return cls(
            new_name=_require_str(data, "new_name"),
            new_secondary_name=_require_str(data, "new_secondary_name"),
            explanation=_require_str(data, "explanation"),
            previous_name=_require_str(data, "previous_name"),
            content_hash=_require_str(data, "content_hash", default=""),
            staged_at=_require_str(data, "staged_at", default=""),
        )


@dataclass
class WeeklyStats:
    """Rolling seven-day averages used when no narrative is cached.

    ``avg_strain`` is on the 0-10 strain scale; readiness is 0-100.
    """

    avg_sleep_hours: float | None = None
    avg_readiness: float | None = None
    avg_strain: float | None = None
    avg_hrv: float | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.avg_sleep_hours, self.avg_readiness, self.avg_strain, self.avg_hrv)
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> WeeklyStats:
        data = _require_mapping(data, "weekly_stats")
        return cls(
            avg_sleep_hours=coerce_number(data.get("avg_sleep_hours")),
            avg_readiness=coerce_number(data.get("avg_readiness")),
            avg_strain=coerce_number(data.get("avg_strain")),
            avg_hrv=coerce_number(data.get("avg_hrv")),
        )


@dataclass
class CachedResult:
    """Consistent view of every cached field, read under one lock."""

    main_score: CachedMainScore | None = None
    breakdown: ScoreBreakdown | None = None
    narrative: ExternalNarrative | None = None
    pending_reveal: PendingReveal | None = None
    weekly_stats: WeeklyStats | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (
                self.main_score,
                self.breakdown,
                self.narrative,
                self.pending_reveal,
                self.weekly_stats,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "main_score": self.main_score.to_dict() if self.main_score else None,
            "score_breakdown": self.breakdown.to_payload() if self.breakdown else None,
            "external_narrative": self.narrative.to_dict() if self.narrative else None,
            "pending_reveal": self.pending_reveal.to_dict() if self.pending_reveal else None,
            "weekly_stats": self.weekly_stats.to_dict() if self.weekly_stats else None,
        }

"""Fingerprint of the inputs a narrative was generated from."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from vitalscore.domains.health.domain_logic.models import HealthSnapshot


def _canonical(snapshot: HealthSnapshot, notes: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        name: round(value, 2) for name, value in snapshot.present_values().items()
    }
    if snapshot.date is not None:
        payload["date"] = snapshot.date.isoformat()
    if snapshot.workouts:
        payload["workouts"] = [
            {
                "kind": w.kind,
                "duration_minutes": None if w.duration_minutes is None else round(w.duration_minutes, 2),
                "energy_kcal": None if w.energy_kcal is None else round(w.energy_kcal, 2),
            }
            for w in snapshot.workouts
        ]
    if notes:
        payload["notes"] = notes.strip()
    return payload


def compute_content_hash(snapshot: HealthSnapshot, notes: str | None = None) -> str:
    """SHA-256 hex digest of the snapshot's present fields plus optional notes.

    Keys are sorted and floats rounded to two decimals so insignificant
    jitter does not invalidate a cached narrative.
    """
    canonical = json.dumps(_canonical(snapshot, notes), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

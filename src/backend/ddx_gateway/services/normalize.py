"""
Vendor response normalization.

Vendors disagree on how they score a differential (raw relative scores vs.
probabilities) and on how they name urgency. These pure functions fold both
into the canonical schema.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ddx_gateway.models.schemas import DifferentialEntry, Triage, TriageLevel

HIGH_TRIAGE_TAGS = frozenset({
    "emergent", "emergency", "emergency_ambulance", "immediate", "ed", "er", "red",
})
MODERATE_TRIAGE_TAGS = frozenset({
    "urgent", "yellow", "soon", "sooner", "consultation_24",
})

NO_VENDOR_TRIAGE = "vendor triage not provided"


def _non_negative(value: Any) -> Optional[float]:
    # bool is an int subclass; a vendor "true" is not a score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return max(0.0, float(value))


def raw_weight(entry: Mapping[str, Any]) -> float:
    """Probability if present, else score, else 0. Negatives clamp to 0."""
    probability = _non_negative(entry.get("probability"))
    if probability is not None:
        return probability
    score = _non_negative(entry.get("score"))
    if score is not None:
        return score
    return 0.0


def normalize_differential(
    entries: Sequence[Mapping[str, Any]],
    name_key: str = "name",
    code_keys: Optional[Dict[str, str]] = None,
) -> List[DifferentialEntry]:
    """
    Convert vendor differential entries into canonical entries.

    Each entry's weight is divided by the sum of all weights (capped at 1),
    so arbitrary relative scores become a probability-like distribution.
    When every weight is zero or absent, confidence is left out entirely:
    the vendor gave no usable signal, which is not the same as rating every
    condition impossible.

    Args:
        entries: Vendor entries, each a mapping with the condition name under
            ``name_key`` and optional ``probability`` / ``score``.
        name_key: Key holding the condition name.
        code_keys: Vendor field -> canonical code system, e.g.
            ``{"icd10": "icd10"}``. Present values are copied into ``codes``.

    Raises:
        ValueError: An entry carries no condition name. Providers report this
            as an upstream parse error.
    """
    code_keys = code_keys or {}
    weights = [raw_weight(e) for e in entries]
    total = sum(weights)

    normalized = []
    for entry, weight in zip(entries, weights):
        name = entry.get(name_key)
        if name is None or not str(name).strip():
            raise ValueError(f"differential entry has no {name_key!r}")
        codes = {
            system: str(entry[field])
            for field, system in code_keys.items()
            if entry.get(field)
        }
        normalized.append(DifferentialEntry(
            condition=str(name),
            confidence=min(1.0, weight / total) if total > 0 else None,
            codes=codes or None,
        ))
    return normalized


def map_triage(tag: Any) -> Triage:
    """
    Map a vendor urgency tag onto the three canonical levels.

    Total over its input: unknown tags, empty strings, None and non-strings
    all come back as ``low`` with an explanation.
    """
    text = tag.strip().lower() if isinstance(tag, str) else ""
    if text in HIGH_TRIAGE_TAGS:
        level = TriageLevel.HIGH
    elif text in MODERATE_TRIAGE_TAGS:
        level = TriageLevel.MODERATE
    else:
        level = TriageLevel.LOW
    return Triage(level=level, why=f"vendor: {text}" if text else NO_VENDOR_TRIAGE)


def map_vendor_triage(block: Any) -> Triage:
    """Pick the first urgency field a vendor triage block carries and map it."""
    if not isinstance(block, Mapping):
        return map_triage(None)
    for key in ("category", "urgency", "triage_level"):
        if block.get(key):
            return map_triage(block[key])
    return map_triage(None)

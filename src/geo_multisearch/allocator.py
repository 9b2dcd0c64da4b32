from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, Optional

from geo_multisearch.models import SearchEntry, SearchKind


PALETTE = (
    "#dc2626",  # red
    "#2563eb",  # blue
    "#16a34a",  # green
    "#9333ea",  # purple
    "#ea580c",  # orange
    "#0891b2",  # cyan
    "#c026d3",  # fuchsia
    "#ca8a04",  # yellow
    "#4f46e5",  # indigo
    "#059669",  # emerald
)

_SIGNED_KINDS = frozenset({SearchKind.RADIUS})


def _trim(number: str) -> str:
    if "." in number:
        number = number.rstrip("0").rstrip(".")
    return "0" if number in ("", "-0") else number


def compute_signature(
    kind: SearchKind, geometry: Dict[str, Any], *, precision: int = 5
) -> Optional[str]:
    """Dedup key for position-based searches, None for every other kind.

    Center and radius are rounded to `precision` decimals so float jitter does
    not defeat dedup. Trailing zeros are dropped from the radius so 10 and 10.0
    agree.
    """

    if SearchKind(kind) not in _SIGNED_KINDS:
        return None
    lat = geometry.get("lat")
    lng = geometry.get("lng")
    if lat is None or lng is None:
        return None
    p = max(int(precision), 0)
    radius = geometry.get("radius")
    radius_part = "na" if radius is None else _trim(f"{float(radius):.{p}f}")
    return f"{float(lat):.{p}f}|{float(lng):.{p}f}|{radius_part}"


def next_sequence(entries: Iterable[SearchEntry]) -> int:
    """Smallest positive integer not used by `entries`."""

    used = {e.sequence for e in entries if e.sequence}
    candidate = 1
    while candidate in used:
        candidate += 1
    return candidate


def color_for(sequence: int) -> str:
    return PALETTE[int(sequence) % len(PALETTE)]


def new_search_id(kind: SearchKind) -> str:
    return f"{SearchKind(kind).value}-{uuid.uuid4().hex[:12]}"

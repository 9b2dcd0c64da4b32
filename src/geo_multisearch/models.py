from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from geo_multisearch.settings import parse_bool


class SearchKind(str, Enum):
    RADIUS = "radius"
    POLYGON = "polygon"
    ADDRESS = "address"
    HIERARCHY = "hierarchy"

    def __str__(self) -> str:
        return self.value


# Registry order used when merging families.
FAMILY_ORDER: Tuple[SearchKind, ...] = (
    SearchKind.RADIUS,
    SearchKind.POLYGON,
    SearchKind.ADDRESS,
    SearchKind.HIERARCHY,
)


@dataclass(frozen=True)
class SearchSettings:
    show_overlay: bool = True
    show_markers: bool = True
    show_borders: bool = False
    overlay_color_override: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "SearchSettings":
        raw = raw or {}
        override = raw.get("overlay_color_override")
        return cls(
            show_overlay=parse_bool(raw.get("show_overlay"), True),
            show_markers=parse_bool(raw.get("show_markers"), True),
            show_borders=parse_bool(raw.get("show_borders"), False),
            overlay_color_override=str(override) if override else None,
        )


@dataclass(frozen=True)
class Provenance:
    search_id: str
    sequence: int


@dataclass(frozen=True)
class LeafRecord:
    """One geographic unit (e.g. a ZIP code area) returned by a provider.

    `lat`/`lng` are None when the provider row had no finite coordinates.
    """

    key: str
    name: str
    city: str = ""
    county: str = ""
    state: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    measures: Dict[str, float] = field(default_factory=dict)
    provenance: Tuple[Provenance, ...] = ()

    @property
    def population(self) -> float:
        return float(self.measures.get("population", 0) or 0)

    @property
    def households(self) -> float:
        return float(self.measures.get("households", 0) or 0)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def search_ids(self) -> Tuple[str, ...]:
        return tuple(p.search_id for p in self.provenance)

    @property
    def sequences(self) -> Tuple[int, ...]:
        return tuple(sorted({p.sequence for p in self.provenance}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "city": self.city,
            "county": self.county,
            "state": self.state,
            "lat": self.lat,
            "lng": self.lng,
            "measures": dict(self.measures),
            "search_ids": list(self.search_ids),
            "sequences": list(self.sequences),
        }

    def to_row(self) -> Dict[str, Any]:
        """Provider-shaped row; feeding it back through the normalizer is lossless."""

        row: Dict[str, Any] = {
            "key": self.key,
            "name": self.name,
            "city": self.city,
            "county": self.county,
            "state": self.state,
            "lat": self.lat,
            "lng": self.lng,
        }
        row.update(self.measures)
        return row


@dataclass(frozen=True)
class SearchEntry:
    id: str
    kind: SearchKind
    geometry: Dict[str, Any]
    sequence: int = 0
    signature: Optional[str] = None
    color: str = ""
    settings: SearchSettings = field(default_factory=SearchSettings)
    label: str = ""
    timestamp: str = ""
    result_count: int = 0
    summary: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def overlay_color(self) -> str:
        return self.settings.overlay_color_override or self.color

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": str(self.kind),
            "geometry": dict(self.geometry),
            "sequence": self.sequence,
            "signature": self.signature,
            "color": self.overlay_color,
            "settings": self.settings.to_dict(),
            "label": self.label,
            "timestamp": self.timestamp,
            "result_count": self.result_count,
            "summary": dict(self.summary),
        }


@dataclass(frozen=True)
class AggregateRecord:
    id: str
    level: str  # city|county|state
    name: str
    state: str
    county: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    measures: Dict[str, float] = field(default_factory=dict)
    leaf_count: int = 0
    city_count: int = 0
    county_count: int = 0
    search_ids: Tuple[str, ...] = ()
    sequences: Tuple[int, ...] = ()

    @property
    def population(self) -> float:
        return float(self.measures.get("population", 0) or 0)

    @property
    def households(self) -> float:
        return float(self.measures.get("households", 0) or 0)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["search_ids"] = list(self.search_ids)
        payload["sequences"] = list(self.sequences)
        return payload


@dataclass(frozen=True)
class AggregationResult:
    leaves: Tuple[LeafRecord, ...] = ()
    cities: Tuple[AggregateRecord, ...] = ()
    counties: Tuple[AggregateRecord, ...] = ()
    states: Tuple[AggregateRecord, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.leaves

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "leaves": [leaf.to_dict() for leaf in self.leaves],
            "cities": [a.to_dict() for a in self.cities],
            "counties": [a.to_dict() for a in self.counties],
            "states": [a.to_dict() for a in self.states],
        }


def _finite(value: Any, name: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number") from None
    if not math.isfinite(out):
        raise ValueError(f"{name} must be finite")
    return out


def _points(raw: Any) -> List[List[float]]:
    if not isinstance(raw, (list, tuple)) or len(raw) < 3:
        raise ValueError("polygon needs at least 3 points")
    out: List[List[float]] = []
    for pt in raw:
        if isinstance(pt, dict):
            lat, lng = pt.get("lat"), pt.get("lng")
        elif isinstance(pt, (list, tuple)) and len(pt) >= 2:
            lat, lng = pt[0], pt[1]
        else:
            raise ValueError("polygon points must be [lat, lng] pairs")
        out.append([_finite(lat, "lat"), _finite(lng, "lng")])
    return out


def validate_geometry(kind: SearchKind, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a canonical geometry descriptor for `kind`.

    radius:    {"lat", "lng", "radius"}
    polygon:   {"points", "shape_type"}
    address:   {"mode": "radius", "lat", "lng", "radius"} or {"mode": "polygon", "points"}
    hierarchy: {"state", "county", "city"}
    """

    kind = SearchKind(kind)
    raw = dict(raw or {})
    if kind is SearchKind.RADIUS:
        radius = _finite(raw.get("radius"), "radius")
        if radius <= 0:
            raise ValueError("radius must be positive")
        return {
            "lat": _finite(raw.get("lat"), "lat"),
            "lng": _finite(raw.get("lng"), "lng"),
            "radius": radius,
        }
    if kind is SearchKind.POLYGON:
        return {
            "points": _points(raw.get("points")),
            "shape_type": str(raw.get("shape_type") or "polygon"),
        }
    if kind is SearchKind.ADDRESS:
        mode = str(raw.get("mode") or "radius").lower()
        if mode == "polygon":
            return {"mode": "polygon", "points": _points(raw.get("points"))}
        if mode != "radius":
            raise ValueError("address mode must be 'radius' or 'polygon'")
        radius = _finite(raw.get("radius"), "radius")
        if radius <= 0:
            raise ValueError("radius must be positive")
        return {
            "mode": "radius",
            "lat": _finite(raw.get("lat"), "lat"),
            "lng": _finite(raw.get("lng"), "lng"),
            "radius": radius,
        }
    state = str(raw.get("state") or "").strip().upper()
    if not state:
        raise ValueError("hierarchy search requires a state")
    county = str(raw.get("county") or "").strip()
    city = str(raw.get("city") or "").strip()
    if city and not county:
        raise ValueError("hierarchy city search requires a county")
    return {"state": state, "county": county or None, "city": city or None}

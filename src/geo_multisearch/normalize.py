"""Provider row sanitization.

This is the only place where upstream field-name variants are handled; every
other module works with `LeafRecord`.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from geo_multisearch.models import LeafRecord


_WHITESPACE_RE = re.compile(r"\s+")

KEY_FIELDS = ("key", "zipcode", "zipCode", "zip_code", "zip", "code", "id")
NAME_FIELDS = ("name", "address", "street")
CITY_FIELDS = ("city", "primary_city")
COUNTY_FIELDS = ("county", "county_name")
STATE_FIELDS = ("stateCode", "state_code", "state")
LAT_FIELDS = ("lat", "latitude", "centroid_lat")
LNG_FIELDS = ("lng", "longitude", "lon", "centroid_lng")

# Summable measures; population and households are always present.
MEASURE_FIELDS: Dict[str, Sequence[str]] = {
    "population": ("population", "pop"),
    "households": ("households",),
    "area": ("area", "land_area_sq_mi", "landAreaSqMi"),
    "overlap": ("overlap",),
}
REQUIRED_MEASURES = ("population", "households")


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and not math.isfinite(value):
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def _first(row: Mapping[str, Any], fields: Iterable[str]) -> str:
    for name in fields:
        text = clean_text(row.get(name))
        if text:
            return text
    return ""


def to_finite(value: Any) -> Optional[float]:
    """Parse numbers and numeric strings; anything non-finite becomes None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            out = float(text)
        except ValueError:
            return None
    return out if math.isfinite(out) else None


def _coordinate(row: Mapping[str, Any], fields: Iterable[str]) -> Optional[float]:
    for name in fields:
        if name in row:
            parsed = to_finite(row.get(name))
            if parsed is not None:
                return parsed
    return None


def _measures(row: Mapping[str, Any]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for measure, aliases in MEASURE_FIELDS.items():
        value: Optional[float] = None
        present = False
        for alias in aliases:
            if alias in row:
                present = True
                value = to_finite(row.get(alias))
                if value is not None:
                    break
        if measure in REQUIRED_MEASURES or present:
            out[measure] = value if value is not None else 0.0
    return out


def normalize_row(row: Mapping[str, Any], index: int) -> Optional[LeafRecord]:
    if not isinstance(row, Mapping):
        return None
    code = _first(row, KEY_FIELDS)
    city = _first(row, CITY_FIELDS)
    county = _first(row, COUNTY_FIELDS)
    state = _first(row, STATE_FIELDS)
    if len(state) == 2:
        state = state.upper()
    key = code or f"{city or 'zip'}-{state or '??'}-{index}"

    lat = _coordinate(row, LAT_FIELDS)
    lng = _coordinate(row, LNG_FIELDS)
    if lat is None or lng is None:
        lat = lng = None

    return LeafRecord(
        key=key,
        name=_first(row, NAME_FIELDS) or code or key,
        city=city,
        county=county,
        state=state,
        lat=lat,
        lng=lng,
        measures=_measures(row),
    )


def normalize_rows(rows: Any) -> List[LeafRecord]:
    """Convert raw provider rows into LeafRecords, first occurrence of a key wins."""

    if not isinstance(rows, (list, tuple)):
        return []
    seen = set()
    out: List[LeafRecord] = []
    for index, row in enumerate(rows):
        leaf = normalize_row(row, index)
        if leaf is None or leaf.key in seen:
            continue
        seen.add(leaf.key)
        out.append(leaf)
    return out

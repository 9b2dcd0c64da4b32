from __future__ import annotations

import hashlib
import math
from typing import Any, Dict, List, Tuple

from geo_multisearch.models import SearchKind


CELL_DEG = 0.05
MILES_PER_DEG = 69.0

_PLACE_STEMS = (
    "Oak", "Cedar", "River", "Lake", "Pine", "Maple", "Spring", "Mill",
    "Fair", "Green", "Rock", "Elm", "Brook", "Hill", "Glen", "Ash",
)
_PLACE_SUFFIXES = ("ton", "ville", " Park", " Falls", "field", " Heights", "wood", " City")
_STATES = ("TX", "NY", "CA", "FL", "IL", "GA", "WA", "CO", "OH", "NC")


def _digest(seed: str) -> str:
    return hashlib.md5(seed.encode("utf-8")).hexdigest()


def _place(seed: str) -> str:
    d = _digest(seed)
    return _PLACE_STEMS[int(d[:2], 16) % len(_PLACE_STEMS)] + _PLACE_SUFFIXES[
        int(d[2:4], 16) % len(_PLACE_SUFFIXES)
    ]


class DevProvider:
    """Deterministic, network-free provider for demos and tests.

    The plane is cut into CELL_DEG cells; each cell is one synthetic ZIP-like
    unit with stable code, parents and measures, so overlapping searches return
    overlapping keys.
    """

    name = "dev"

    def __init__(self, limit: int = 500) -> None:
        self.limit = max(int(limit), 1)
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def search(self, kind: SearchKind, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        kind = SearchKind(kind)
        self.calls.append((kind.value, dict(geometry)))
        if kind is SearchKind.RADIUS:
            return self._radius(geometry["lat"], geometry["lng"], geometry["radius"])
        if kind is SearchKind.POLYGON:
            return self._bbox(geometry["points"])
        if kind is SearchKind.ADDRESS:
            return self._addresses(geometry)
        return self._hierarchy(geometry)

    def _cell_row(self, ix: int, iy: int) -> Dict[str, Any]:
        d = _digest(f"cell:{ix}:{iy}")
        state = _STATES[(ix // 60 + iy // 60) % len(_STATES)]
        county = _place(f"county:{ix // 10}:{iy // 10}") + " County"
        city = _place(f"city:{ix // 4}:{iy // 4}")
        population = int(d[8:12], 16) % 40000 + 500
        return {
            "zipcode": f"{int(d[:8], 16) % 100000:05d}",
            "city": city,
            "county": county,
            "state": state,
            "latitude": round((iy + 0.5) * CELL_DEG, 6),
            "longitude": round((ix + 0.5) * CELL_DEG, 6),
            "population": population,
            "households": population // 3,
        }

    def _radius(self, lat: float, lng: float, miles: float) -> List[Dict[str, Any]]:
        dlat = float(miles) / MILES_PER_DEG
        dlng = min(dlat / max(math.cos(math.radians(float(lat))), 1e-6), 360.0)
        # The cell holding the center is always a hit, however small the radius.
        home = (math.floor(lng / CELL_DEG), math.floor(lat / CELL_DEG))
        rows: List[Dict[str, Any]] = []
        for iy in range(math.floor((lat - dlat) / CELL_DEG), math.ceil((lat + dlat) / CELL_DEG)):
            for ix in range(math.floor((lng - dlng) / CELL_DEG), math.ceil((lng + dlng) / CELL_DEG)):
                c_lat = (iy + 0.5) * CELL_DEG
                c_lng = (ix + 0.5) * CELL_DEG
                dy = (c_lat - lat) * MILES_PER_DEG
                dx = (c_lng - lng) * MILES_PER_DEG * math.cos(math.radians(lat))
                if (ix, iy) == home or math.hypot(dx, dy) <= miles:
                    rows.append(self._cell_row(ix, iy))
                if len(rows) >= self.limit:
                    return rows
        return rows

    def _bbox(self, points: List[List[float]]) -> List[Dict[str, Any]]:
        lats = [float(p[0]) for p in points]
        lngs = [float(p[1]) for p in points]
        rows: List[Dict[str, Any]] = []
        for iy in range(math.floor(min(lats) / CELL_DEG), math.ceil(max(lats) / CELL_DEG)):
            for ix in range(math.floor(min(lngs) / CELL_DEG), math.ceil(max(lngs) / CELL_DEG)):
                rows.append(self._cell_row(ix, iy))
                if len(rows) >= self.limit:
                    return rows
        return rows

    def _addresses(self, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        if geometry.get("mode") == "polygon":
            cells = self._bbox(geometry["points"])
        else:
            cells = self._radius(geometry["lat"], geometry["lng"], geometry["radius"])
        rows: List[Dict[str, Any]] = []
        for cell in cells:
            for n in range(3):
                rows.append(
                    {
                        "id": f"addr-{cell['zipcode']}-{n}",
                        "address": f"{100 + n * 10} {cell['city']} Rd",
                        "city": cell["city"],
                        "county": cell["county"],
                        "state": cell["state"],
                        "lat": cell["latitude"],
                        "lng": cell["longitude"],
                        "households": 1,
                    }
                )
                if len(rows) >= self.limit:
                    return rows
        return rows

    def _hierarchy(self, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        state = str(geometry.get("state") or "")
        county = geometry.get("county") or _place(f"county:{state}") + " County"
        city = geometry.get("city")
        d = _digest(f"hier:{state}:{county}:{city or ''}")
        rows: List[Dict[str, Any]] = []
        count = 3 if city else 8
        for n in range(min(count, self.limit)):
            seed = _digest(f"{d}:{n}")
            population = int(seed[:4], 16) % 30000 + 1000
            rows.append(
                {
                    "zipcode": f"{int(seed[4:12], 16) % 100000:05d}",
                    "city": city or _place(f"city:{d}:{n % 3}"),
                    "county": county,
                    "state": state,
                    "latitude": 30.0 + int(seed[12:14], 16) / 100.0,
                    "longitude": -95.0 + int(seed[14:16], 16) / 100.0,
                    "population": population,
                    "households": population // 3,
                }
            )
        return rows

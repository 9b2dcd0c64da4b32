from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from geo_multisearch.errors import ProviderError
from geo_multisearch.models import SearchKind


logger = logging.getLogger("gms.provider")


class HttpProvider:
    """Client for the `/search` REST endpoint.

    radius:    ?lat=&lng=&radius=&limit=
    polygon:   ?polygon=<json [[lat, lng], ...]>&limit=
    hierarchy: ?state=&county=&city=&limit=
    Address searches use the same parameters with `mode=address`.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        limit: int = 500,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.limit = int(limit)
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def build_params(self, kind: SearchKind, geometry: Dict[str, Any]) -> Dict[str, Any]:
        kind = SearchKind(kind)
        params: Dict[str, Any] = {"limit": self.limit}
        if kind is SearchKind.ADDRESS:
            params["mode"] = "address"
        points = geometry.get("points")
        if kind is SearchKind.HIERARCHY:
            params["state"] = geometry.get("state")
            if geometry.get("county"):
                params["county"] = geometry["county"]
            if geometry.get("city"):
                params["city"] = geometry["city"]
        elif points:
            params["polygon"] = json.dumps(points)
        else:
            params["lat"] = geometry.get("lat")
            params["lng"] = geometry.get("lng")
            params["radius"] = geometry.get("radius")
        return params

    def search(self, kind: SearchKind, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        kind = SearchKind(kind)
        url = f"{self.base_url}/search"
        try:
            resp = self._session.get(
                url, params=self.build_params(kind, geometry), timeout=self.timeout
            )
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            logger.warning("provider request failed for %s: %s", kind.value, e)
            raise ProviderError(f"search request failed: {e}", kind=kind.value) from e
        except ValueError as e:
            raise ProviderError("search response was not JSON", kind=kind.value) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
            raise ProviderError("search response missing 'results'", kind=kind.value)
        return [row for row in payload["results"] if isinstance(row, dict)]

from __future__ import annotations

from typing import Any, Dict, List, Protocol

from geo_multisearch.models import SearchKind


class SearchProvider(Protocol):
    """External geographic search.

    Returns raw provider rows; field names may vary. Failures must be raised
    as `ProviderError`.
    """

    name: str

    def search(self, kind: SearchKind, geometry: Dict[str, Any]) -> List[Dict[str, Any]]: ...

"""Package initializer for `geo_multisearch`."""

from .engine import SearchEngine
from .errors import (
    CooldownError,
    GeoSearchError,
    PayloadError,
    ProviderError,
    UnknownSearchError,
)
from .models import AggregationResult, LeafRecord, SearchEntry, SearchKind, SearchSettings

__all__ = [
    "AggregationResult",
    "CooldownError",
    "GeoSearchError",
    "LeafRecord",
    "PayloadError",
    "ProviderError",
    "SearchEngine",
    "SearchEntry",
    "SearchKind",
    "SearchSettings",
    "UnknownSearchError",
]

from geo_multisearch.providers.base import SearchProvider
from geo_multisearch.providers.dev import DevProvider
from geo_multisearch.providers.http import HttpProvider
from geo_multisearch.providers.registry import get_provider

__all__ = ["DevProvider", "HttpProvider", "SearchProvider", "get_provider"]

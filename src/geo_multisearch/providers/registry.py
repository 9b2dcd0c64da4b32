from __future__ import annotations

from typing import Optional

from geo_multisearch.providers.base import SearchProvider
from geo_multisearch.providers.dev import DevProvider
from geo_multisearch.providers.http import HttpProvider
from geo_multisearch.settings import get_settings


def get_provider(name: Optional[str] = None) -> SearchProvider:
    settings = get_settings()
    key = (name or settings.provider or "dev").strip().lower()
    if key == "http":
        return HttpProvider(
            base_url=settings.provider_url,
            timeout=settings.provider_timeout_s,
            limit=settings.result_limit,
        )
    if key == "dev":
        return DevProvider(limit=settings.result_limit)
    raise ValueError(f"unknown provider: {name}")

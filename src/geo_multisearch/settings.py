from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def parse_bool(raw: object, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    v = str(raw).strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _env_bool(name: str, default: bool) -> bool:
    return parse_bool(os.getenv(name), default)


def _env_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = float(str(raw).strip())
    except ValueError:
        return default
    if value != value or value < 0:
        return default
    return value


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip() or default


@dataclass(frozen=True)
class EngineSettings:
    """Engine configuration read from GMS_* environment variables.

    Defaults MUST preserve current behavior.
    """

    history_cap: int
    signature_precision: int
    address_cooldown_s: float
    result_limit: int
    provider: str
    provider_url: str
    provider_timeout_s: float
    combine_default: bool

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            history_cap=_env_int("GMS_HISTORY_CAP", 6, minimum=1),
            signature_precision=_env_int("GMS_SIGNATURE_PRECISION", 5, minimum=0),
            address_cooldown_s=_env_float("GMS_ADDRESS_COOLDOWN_SECONDS", 5.0),
            result_limit=_env_int("GMS_RESULT_LIMIT", 500, minimum=1),
            provider=_env_str("GMS_PROVIDER", "dev").lower(),
            provider_url=_env_str("GMS_PROVIDER_URL", "http://localhost:3001/api"),
            provider_timeout_s=_env_float("GMS_PROVIDER_TIMEOUT_SECONDS", 10.0),
            combine_default=_env_bool("GMS_COMBINE_DEFAULT", True),
        )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    return EngineSettings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()

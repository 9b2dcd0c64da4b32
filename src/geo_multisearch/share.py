"""Export/restore payload contract and the legacy share-token codec."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from geo_multisearch.errors import PayloadError
from geo_multisearch.models import FAMILY_ORDER, SearchKind


PAYLOAD_VERSION = 1


class SavedSearch(BaseModel):
    """One serialized search.

    `sequence` and `color` are hints from the exporting registry; restore
    ignores them and allocates fresh values.
    """

    id: Optional[str] = None
    kind: SearchKind
    geometry: Dict[str, Any]
    label: str = ""
    settings: Dict[str, Any] = Field(default_factory=dict)
    signature: Optional[str] = None
    sequence: Optional[int] = None
    color: Optional[str] = None
    cached_leaves: Optional[List[Dict[str, Any]]] = None


class SharePayload(BaseModel):
    version: int = PAYLOAD_VERSION
    families: Dict[SearchKind, List[SavedSearch]] = Field(default_factory=dict)
    combine: bool = True
    focus: Optional[SearchKind] = None
    active_id: Optional[str] = None
    excluded: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _kinds_match_family(self) -> "SharePayload":
        for family, saved in self.families.items():
            for item in saved:
                if item.kind != family:
                    raise ValueError(
                        f"search kind {item.kind.value!r} listed under family {family.value!r}"
                    )
        return self

    def ordered_families(self) -> List[SearchKind]:
        return [k for k in FAMILY_ORDER if self.families.get(k)]


def parse_payload(raw: Any) -> SharePayload:
    if isinstance(raw, SharePayload):
        return raw
    if not isinstance(raw, dict):
        raise PayloadError("restore payload must be a JSON object")
    try:
        return SharePayload.model_validate(raw)
    except ValidationError as e:
        raise PayloadError(f"invalid restore payload: {e.error_count()} error(s)") from e


def encode_share_token(payload: SharePayload) -> str:
    raw = json.dumps(payload.model_dump(mode="json"), separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_share_token(token: str) -> SharePayload:
    text = (token or "").strip().replace("+", "-").replace("/", "_")
    if not text:
        raise PayloadError("share token is empty")
    text += "=" * (-len(text) % 4)
    try:
        decoded = base64.urlsafe_b64decode(text.encode("ascii")).decode("utf-8")
        raw = json.loads(decoded)
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise PayloadError("share token could not be decoded") from e
    return parse_payload(raw)

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from geo_multisearch.models import SearchSettings


class SettingsBody(BaseModel):
    show_overlay: Optional[bool] = None
    show_markers: Optional[bool] = None
    show_borders: Optional[bool] = None
    overlay_color_override: Optional[str] = None

    def as_update(self) -> Dict[str, Any]:
        """Only the fields the client actually sent."""

        return self.model_dump(exclude_unset=True)

    def as_settings(self) -> SearchSettings:
        return SearchSettings.from_dict(self.as_update())


class _SearchBody(BaseModel):
    label: Optional[str] = None
    settings: Optional[SettingsBody] = None

    def search_settings(self) -> Optional[SearchSettings]:
        return self.settings.as_settings() if self.settings is not None else None


class RadiusSearchBody(_SearchBody):
    lat: float
    lng: float
    radius: float = Field(gt=0)


class PolygonSearchBody(_SearchBody):
    points: List[List[float]] = Field(min_length=3)
    shape_type: str = "polygon"


class AddressSearchBody(_SearchBody):
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius: Optional[float] = None
    points: Optional[List[List[float]]] = None


class HierarchySearchBody(_SearchBody):
    state: str
    county: Optional[str] = None
    city: Optional[str] = None


class RenameBody(BaseModel):
    label: str


class ExcludeBody(BaseModel):
    excluded: bool = True


class CombineBody(BaseModel):
    combine: bool


class RestoreResponse(BaseModel):
    ok: bool = True
    restored: List[str] = Field(default_factory=list)
    pending: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    skipped: List[Dict[str, str]] = Field(default_factory=list)

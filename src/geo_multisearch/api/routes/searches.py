from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import APIRouter, Body, HTTPException

from geo_multisearch.api.schemas import (
    AddressSearchBody,
    CombineBody,
    ExcludeBody,
    HierarchySearchBody,
    PolygonSearchBody,
    RadiusSearchBody,
    RenameBody,
    RestoreResponse,
    SettingsBody,
)
from geo_multisearch.engine import SearchEngine
from geo_multisearch.errors import (
    CooldownError,
    PayloadError,
    ProviderError,
    UnknownSearchError,
)
from geo_multisearch.share import decode_share_token, encode_share_token

logger = logging.getLogger("gms.api")

router = APIRouter(tags=["searches"])

T = TypeVar("T")

_engine: Optional[SearchEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> SearchEngine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = SearchEngine()
        return _engine


def set_engine(engine: Optional[SearchEngine]) -> None:
    """Swap the process-wide engine (None re-creates it from settings on next use)."""

    global _engine
    with _engine_lock:
        _engine = engine


def _call(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    try:
        return fn(*args, **kwargs)
    except UnknownSearchError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CooldownError as e:
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": str(e.remaining_s)},
        )
    except ProviderError as e:
        logger.warning("provider error: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    except PayloadError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _entry_response(entry) -> Dict[str, Any]:
    engine = get_engine()
    return {"ok": True, "entry": entry.to_dict(), "view": engine.snapshot()}


@router.get("/view")
def view() -> Dict[str, Any]:
    return get_engine().snapshot()


@router.post("/searches/radius")
def create_radius_search(body: RadiusSearchBody) -> Dict[str, Any]:
    entry = _call(
        get_engine().search_radius,
        body.lat,
        body.lng,
        body.radius,
        label=body.label,
        settings=body.search_settings(),
    )
    return _entry_response(entry)


@router.post("/searches/polygon")
def create_polygon_search(body: PolygonSearchBody) -> Dict[str, Any]:
    entry = _call(
        get_engine().search_polygon,
        body.points,
        shape_type=body.shape_type,
        label=body.label,
        settings=body.search_settings(),
    )
    return _entry_response(entry)


@router.post("/searches/address")
def create_address_search(body: AddressSearchBody) -> Dict[str, Any]:
    entry = _call(
        get_engine().search_address,
        lat=body.lat,
        lng=body.lng,
        radius=body.radius,
        points=body.points,
        label=body.label,
        settings=body.search_settings(),
    )
    return _entry_response(entry)


@router.post("/searches/hierarchy")
def create_hierarchy_search(body: HierarchySearchBody) -> Dict[str, Any]:
    entry = _call(
        get_engine().search_hierarchy,
        body.state,
        body.county,
        body.city,
        label=body.label,
        settings=body.search_settings(),
    )
    return _entry_response(entry)


@router.delete("/searches/{search_id}")
def delete_search(search_id: str) -> Dict[str, Any]:
    entry = _call(get_engine().remove, search_id)
    return _entry_response(entry)


@router.patch("/searches/{search_id}/settings")
def update_search_settings(search_id: str, body: SettingsBody) -> Dict[str, Any]:
    entry = _call(get_engine().update_settings, search_id, body.as_update())
    return _entry_response(entry)


@router.post("/searches/{search_id}/rename")
def rename_search(search_id: str, body: RenameBody) -> Dict[str, Any]:
    entry = _call(get_engine().rename, search_id, body.label)
    return _entry_response(entry)


@router.post("/searches/{search_id}/exclude")
def exclude_search(search_id: str, body: ExcludeBody) -> Dict[str, Any]:
    engine = get_engine()
    _call(engine.set_excluded, search_id, body.excluded)
    return {"ok": True, "view": engine.snapshot()}


@router.post("/searches/{search_id}/replay")
def replay_search(search_id: str) -> Dict[str, Any]:
    entry = _call(get_engine().replay, search_id)
    return _entry_response(entry)


@router.post("/searches/{search_id}/activate")
def activate_search(search_id: str) -> Dict[str, Any]:
    engine = get_engine()
    _call(engine.set_active, search_id)
    return {"ok": True, "view": engine.snapshot()}


@router.post("/combine")
def set_combine(body: CombineBody) -> Dict[str, Any]:
    engine = get_engine()
    engine.set_combine(body.combine)
    return {"ok": True, "view": engine.snapshot()}


@router.post("/reset")
def reset() -> Dict[str, Any]:
    engine = get_engine()
    engine.clear()
    return {"ok": True, "view": engine.snapshot()}


@router.get("/export")
def export(include_leaves: bool = True) -> Dict[str, Any]:
    payload = get_engine().export(include_leaves=include_leaves)
    return payload.model_dump(mode="json")


@router.get("/share")
def share() -> Dict[str, Any]:
    payload = get_engine().export(include_leaves=False)
    return {"token": encode_share_token(payload)}


@router.post("/restore", response_model=RestoreResponse)
def restore(payload: Dict[str, Any] = Body(...), refetch: bool = True) -> RestoreResponse:
    engine = get_engine()
    if isinstance(payload.get("token"), str):
        raw: Any = _call(decode_share_token, payload["token"])
    else:
        raw = payload
    report = _call(engine.restore, raw, refetch=refetch)
    return RestoreResponse(**report.to_dict())

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from geo_multisearch.aggregation import aggregate
from geo_multisearch.allocator import compute_signature, new_search_id
from geo_multisearch.errors import CooldownError, ProviderError
from geo_multisearch.history import RestoreReport, export_payload, restore as restore_payload
from geo_multisearch.log import log_event
from geo_multisearch.models import (
    FAMILY_ORDER,
    AggregationResult,
    LeafRecord,
    SearchEntry,
    SearchKind,
    SearchSettings,
    validate_geometry,
)
from geo_multisearch.normalize import normalize_rows
from geo_multisearch.providers.base import SearchProvider
from geo_multisearch.providers.registry import get_provider
from geo_multisearch.registry import SearchRegistry, SettingsUpdate
from geo_multisearch.settings import EngineSettings, get_settings
from geo_multisearch.share import SharePayload
from geo_multisearch.states import state_name


logger = logging.getLogger("gms.engine")


def _num(value: Any) -> str:
    return f"{float(value):g}"


def default_label(entry: SearchEntry) -> str:
    g = entry.geometry
    if entry.kind is SearchKind.RADIUS:
        return f"{g['lat']:.3f}, {g['lng']:.3f} ({_num(g['radius'])}m)"
    if entry.kind is SearchKind.ADDRESS:
        if g.get("mode") == "polygon":
            return f"Address: Polygon {entry.sequence}"
        return f"Address: {g['lat']:.3f}, {g['lng']:.3f} ({_num(g['radius'])}mi)"
    if entry.kind is SearchKind.POLYGON:
        return f"Shape {entry.sequence}"
    state = state_name(g.get("state"))
    if g.get("city"):
        return f"{g['city']}, {g['county']}, {state}"
    if g.get("county"):
        return f"{g['county']}, {state}"
    return f"{state} (all counties)"


class SearchEngine:
    """Owned multi-search state: registry, leaf sets, exclusions, combine mode.

    Every mutation runs under one lock and ends with `rebuild()`, so readers
    only ever see a view computed from a consistent state. Provider round trips
    happen outside the lock; sequences and signatures are resolved against the
    registry as it is at insertion time.
    """

    def __init__(
        self,
        provider: Optional[SearchProvider] = None,
        *,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        if provider is None:
            provider = get_provider(self.settings.provider)
        self.provider = provider
        self._registry = SearchRegistry(history_cap=self.settings.history_cap)
        self._clock = clock
        self._lock = threading.RLock()
        self._combine = bool(self.settings.combine_default)
        self._active: Dict[SearchKind, Optional[str]] = {k: None for k in FAMILY_ORDER}
        self._focus: SearchKind = SearchKind.RADIUS
        self._last_address_call: Optional[float] = None
        self._view = AggregationResult()
        self.rebuilds = 0

    # -- read side ---------------------------------------------------------

    @property
    def view(self) -> AggregationResult:
        return self._view

    @property
    def combine(self) -> bool:
        return self._combine

    @property
    def focus(self) -> SearchKind:
        return self._focus

    @property
    def active_id(self) -> Optional[str]:
        return self._active[self._focus]

    def active_for(self, kind: SearchKind) -> Optional[str]:
        return self._active[SearchKind(kind)]

    def entries(self, kind: Optional[SearchKind] = None) -> List[SearchEntry]:
        return self._registry.entries(kind)

    def get(self, search_id: str) -> SearchEntry:
        return self._registry.get(search_id)

    def __contains__(self, search_id: object) -> bool:
        return search_id in self._registry

    def leaves(self, search_id: str) -> Tuple[LeafRecord, ...]:
        """Copies of the stored leaves for one active search."""

        with self._lock:
            self._registry.get(search_id)
            stored = self._registry.leaves(search_id)
        return tuple(replace(leaf, measures=dict(leaf.measures)) for leaf in stored)

    def excluded_ids(self) -> List[str]:
        return self._registry.excluded_ids()

    def is_excluded(self, search_id: str) -> bool:
        return self._registry.is_excluded(search_id)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": [e.to_dict() for e in self._registry.entries()],
                "excluded": self._registry.excluded_ids(),
                "combine": self._combine,
                "focus": self._focus.value,
                "active_id": self.active_id,
                "results": self._view.to_dict(),
            }

    def cooldown_remaining(self) -> float:
        if self._last_address_call is None:
            return 0.0
        elapsed = self._clock() - self._last_address_call
        return max(self.settings.address_cooldown_s - elapsed, 0.0)

    # -- recomputation -----------------------------------------------------

    def rebuild(self) -> AggregationResult:
        with self._lock:
            self._view = aggregate(
                self._registry.entries(),
                self._registry.index,
                self._registry.excluded_ids(),
                self._combine,
                self.active_id,
            )
            self.rebuilds += 1
            log_event(
                logger,
                "rebuild",
                logging.DEBUG,
                count=self.rebuilds,
                leaves=len(self._view.leaves),
                cities=len(self._view.cities),
                counties=len(self._view.counties),
                states=len(self._view.states),
            )
            return self._view

    # -- provider boundary -------------------------------------------------

    def fetch(self, kind: SearchKind, geometry: Dict[str, Any]) -> List[LeafRecord]:
        """Run the provider and normalize its rows; failures raise ProviderError."""

        kind = SearchKind(kind)
        try:
            rows = self.provider.search(kind, geometry)
        except ProviderError as e:
            log_event(logger, "search.failed", logging.WARNING, kind=kind.value, error=str(e))
            raise
        except Exception as e:
            log_event(logger, "search.failed", logging.WARNING, kind=kind.value, error=str(e))
            raise ProviderError(str(e) or type(e).__name__, kind=kind.value) from e
        return normalize_rows(rows)

    def _claim_address_slot(self) -> None:
        with self._lock:
            remaining = self.cooldown_remaining()
            if remaining > 0:
                raise CooldownError(remaining)
            self._last_address_call = self._clock()

    # -- search actions ----------------------------------------------------

    def run_search(
        self,
        kind: SearchKind,
        geometry: Dict[str, Any],
        *,
        label: Optional[str] = None,
        settings: Optional[SearchSettings] = None,
    ) -> SearchEntry:
        """Fetch, normalize and insert one search; returns the stored entry.

        Nothing is inserted if the provider fails.
        """

        kind = SearchKind(kind)
        geometry = validate_geometry(kind, geometry)
        if kind is SearchKind.ADDRESS:
            self._claim_address_slot()
        leaves = self.fetch(kind, geometry)
        with self._lock:
            draft = SearchEntry(
                id=new_search_id(kind),
                kind=kind,
                geometry=geometry,
                signature=compute_signature(
                    kind, geometry, precision=self.settings.signature_precision
                ),
                settings=settings or SearchSettings(),
                label=(label or "").strip(),
            )
            entry = self._registry.insert(draft, leaves)
            if not entry.label:
                entry = self._registry.rename(entry.id, default_label(entry))
            self._active[kind] = entry.id
            self._focus = kind
            log_event(
                logger,
                "search.inserted",
                kind=kind.value,
                search_id=entry.id,
                sequence=entry.sequence,
                results=entry.result_count,
            )
            self.rebuild()
            return entry

    def search_radius(self, lat: float, lng: float, radius: float, **kwargs: Any) -> SearchEntry:
        return self.run_search(
            SearchKind.RADIUS, {"lat": lat, "lng": lng, "radius": radius}, **kwargs
        )

    def search_polygon(
        self, points: Sequence[Sequence[float]], *, shape_type: str = "polygon", **kwargs: Any
    ) -> SearchEntry:
        return self.run_search(
            SearchKind.POLYGON, {"points": points, "shape_type": shape_type}, **kwargs
        )

    def search_address(
        self,
        *,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius: Optional[float] = None,
        points: Optional[Sequence[Sequence[float]]] = None,
        **kwargs: Any,
    ) -> SearchEntry:
        if points is not None:
            geometry: Dict[str, Any] = {"mode": "polygon", "points": points}
        else:
            geometry = {"mode": "radius", "lat": lat, "lng": lng, "radius": radius}
        return self.run_search(SearchKind.ADDRESS, geometry, **kwargs)

    def search_hierarchy(
        self,
        state: str,
        county: Optional[str] = None,
        city: Optional[str] = None,
        **kwargs: Any,
    ) -> SearchEntry:
        return self.run_search(
            SearchKind.HIERARCHY, {"state": state, "county": county, "city": city}, **kwargs
        )

    def replay(self, search_id: str) -> SearchEntry:
        """Re-run a stored search and swap in its fresh leaves.

        The entry keeps its id, sequence, signature and settings. A provider
        failure leaves the previous leaves in place.
        """

        entry = self._registry.get(search_id)
        if entry.kind is SearchKind.ADDRESS:
            self._claim_address_slot()
        leaves = self.fetch(entry.kind, entry.geometry)
        with self._lock:
            updated = self._registry.replace_results(search_id, leaves)
            self._active[updated.kind] = updated.id
            self._focus = updated.kind
            log_event(
                logger,
                "search.replayed",
                kind=updated.kind.value,
                search_id=updated.id,
                results=updated.result_count,
            )
            self.rebuild()
            return updated

    # -- registry mutations ------------------------------------------------

    def remove(self, search_id: str) -> SearchEntry:
        with self._lock:
            entry = self._registry.remove(search_id)
            if self._active[entry.kind] == search_id:
                remaining = self._registry.entries(entry.kind)
                self._active[entry.kind] = remaining[0].id if remaining else None
            log_event(logger, "search.removed", kind=entry.kind.value, search_id=search_id)
            self.rebuild()
            return entry

    def update_settings(self, search_id: str, update: SettingsUpdate) -> SearchEntry:
        with self._lock:
            entry = self._registry.update_settings(search_id, update)
            self.rebuild()
            return entry

    def rename(self, search_id: str, label: str) -> SearchEntry:
        with self._lock:
            entry = self._registry.rename(search_id, label)
            self.rebuild()
            return entry

    def set_excluded(self, search_id: str, excluded: bool) -> None:
        with self._lock:
            self._registry.set_excluded(search_id, bool(excluded))
            self.rebuild()

    def toggle_exclusion(self, search_id: str) -> bool:
        with self._lock:
            excluded = not self._registry.is_excluded(search_id)
            self.set_excluded(search_id, excluded)
            return excluded

    def set_combine(self, combine: bool) -> None:
        with self._lock:
            self._combine = bool(combine)
            self.rebuild()

    def set_active(self, search_id: Optional[str], *, kind: Optional[SearchKind] = None) -> None:
        """Focus `search_id` (and its family); None clears the focused family's active entry."""

        with self._lock:
            if search_id is None:
                if kind is not None:
                    self._focus = SearchKind(kind)
                self._active[self._focus] = None
            else:
                entry = self._registry.get(search_id)
                self._active[entry.kind] = entry.id
                self._focus = entry.kind
            self.rebuild()

    def clear(self) -> None:
        with self._lock:
            self._registry.clear()
            self._active = {k: None for k in FAMILY_ORDER}
            self.rebuild()

    def apply_restore(
        self,
        *,
        planned: Dict[SearchKind, List[Tuple[SearchEntry, Sequence[LeafRecord]]]],
        combine: bool,
        focus: Optional[SearchKind],
        active_id: Optional[str],
        excluded: Sequence[str],
    ) -> Tuple[List[str], List[Dict[str, str]]]:
        """Replace all state with pre-fetched drafts, in one atomic step.

        Returns the ids that were stored and, for each draft the registry
        refused, its id, kind and the reason.
        """

        with self._lock:
            self._registry.clear()
            self._active = {k: None for k in FAMILY_ORDER}
            restored: List[str] = []
            dropped: List[Dict[str, str]] = []
            for kind in FAMILY_ORDER:
                for draft, leaves in planned.get(kind, []):
                    full = len(self._registry.entries(kind)) >= self._registry.history_cap
                    entry = self._registry.append(draft, leaves)
                    if entry is None:
                        reason = "history cap reached" if full else "duplicate signature"
                        dropped.append({"id": draft.id, "kind": kind.value, "reason": reason})
                        log_event(
                            logger,
                            "restore.entry_dropped",
                            logging.WARNING,
                            kind=kind.value,
                            search_id=draft.id,
                            reason=reason,
                        )
                        continue
                    if not entry.label:
                        entry = self._registry.rename(entry.id, default_label(entry))
                    restored.append(entry.id)
                family = self._registry.entries(kind)
                self._active[kind] = family[0].id if family else None

            self._combine = bool(combine)
            active = self._registry.find(active_id)
            if active is not None:
                self._active[active.kind] = active.id
                self._focus = active.kind
            elif focus is not None:
                self._focus = SearchKind(focus)
            else:
                self._focus = next(
                    (k for k in FAMILY_ORDER if self._active[k] is not None),
                    SearchKind.RADIUS,
                )
            for search_id in excluded:
                if search_id in self._registry:
                    self._registry.set_excluded(search_id, True)
            self.rebuild()
            return restored, dropped

    def export(self, *, include_leaves: bool = True) -> SharePayload:
        with self._lock:
            return export_payload(self, include_leaves=include_leaves)

    def restore(self, payload: Any, *, refetch: bool = True) -> RestoreReport:
        return restore_payload(self, payload, refetch=refetch)

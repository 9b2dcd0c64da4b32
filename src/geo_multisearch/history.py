"""Export the live registry and replay a serialized one.

Restore rebuilds the registry from scratch: sequences are reassigned 1..n in
list order per family, colors follow the new sequences unless the payload
carried an explicit override, and leaf sets come from cached leaves or a
provider re-fetch. A failed re-fetch keeps the entry with no leaves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from geo_multisearch.allocator import compute_signature, new_search_id
from geo_multisearch.errors import ProviderError
from geo_multisearch.log import log_event
from geo_multisearch.models import (
    LeafRecord,
    SearchEntry,
    SearchKind,
    SearchSettings,
    validate_geometry,
)
from geo_multisearch.normalize import normalize_rows
from geo_multisearch.share import SavedSearch, SharePayload, parse_payload

if TYPE_CHECKING:
    from geo_multisearch.engine import SearchEngine


logger = logging.getLogger("gms.restore")


@dataclass
class RestoreReport:
    restored: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "restored": list(self.restored),
            "pending": list(self.pending),
            "failed": dict(self.failed),
            "skipped": [dict(s) for s in self.skipped],
        }


@dataclass
class _Planned:
    draft: SearchEntry
    leaves: Tuple[LeafRecord, ...]


def export_payload(engine: "SearchEngine", *, include_leaves: bool = True) -> SharePayload:
    """Serialize every active entry, family by family, newest first."""

    families: Dict[SearchKind, List[SavedSearch]] = {}
    for entry in engine.entries():
        leaves = engine.leaves(entry.id)
        families.setdefault(entry.kind, []).append(
            SavedSearch(
                id=entry.id,
                kind=entry.kind,
                geometry=dict(entry.geometry),
                label=entry.label,
                settings=entry.settings.to_dict(),
                signature=entry.signature,
                sequence=entry.sequence,
                color=entry.overlay_color,
                cached_leaves=[leaf.to_row() for leaf in leaves] if include_leaves else None,
            )
        )
    return SharePayload(
        families=families,
        combine=engine.combine,
        focus=engine.focus,
        active_id=engine.active_id,
        excluded=engine.excluded_ids(),
    )


def _plan_entry(
    engine: "SearchEngine",
    saved: SavedSearch,
    id_map: Dict[str, str],
    report: RestoreReport,
    *,
    refetch: bool,
) -> Optional[_Planned]:
    kind = SearchKind(saved.kind)
    try:
        geometry = validate_geometry(kind, saved.geometry)
    except ValueError as e:
        report.skipped.append({"id": saved.id or "", "kind": kind.value, "reason": str(e)})
        log_event(logger, "restore.entry_skipped", logging.WARNING, kind=kind.value, reason=str(e))
        return None

    taken = set(id_map.values())
    search_id = saved.id if saved.id and saved.id not in taken else new_search_id(kind)
    if saved.id and saved.id not in id_map:
        id_map[saved.id] = search_id
    else:
        id_map[search_id] = search_id

    leaves: Tuple[LeafRecord, ...] = ()
    if saved.cached_leaves is not None:
        leaves = tuple(normalize_rows(saved.cached_leaves))
    elif refetch:
        try:
            leaves = tuple(engine.fetch(kind, geometry))
        except ProviderError as e:
            report.failed[search_id] = str(e)
            log_event(
                logger,
                "restore.entry_failed",
                logging.WARNING,
                kind=kind.value,
                search_id=search_id,
                error=str(e),
            )
    else:
        report.pending.append(search_id)

    draft = SearchEntry(
        id=search_id,
        kind=kind,
        geometry=geometry,
        signature=compute_signature(
            kind, geometry, precision=engine.settings.signature_precision
        ),
        settings=SearchSettings.from_dict(saved.settings),
        label=(saved.label or "").strip(),
    )
    return _Planned(draft=draft, leaves=leaves)


def restore(
    engine: "SearchEngine", raw_payload: Any, *, refetch: bool = True
) -> RestoreReport:
    """Replace the engine state with a serialized registry.

    With `refetch=False`, entries without cached leaves are restored empty and
    listed in `report.pending` for the caller to replay.
    """

    payload = parse_payload(raw_payload)
    report = RestoreReport()
    id_map: Dict[str, str] = {}

    # Provider round trips happen before any state is touched.
    planned: Dict[SearchKind, List[_Planned]] = {}
    for kind in payload.ordered_families():
        for saved in payload.families[kind]:
            item = _plan_entry(engine, saved, id_map, report, refetch=refetch)
            if item is not None:
                planned.setdefault(kind, []).append(item)

    report.restored, dropped = engine.apply_restore(
        planned={k: [(p.draft, p.leaves) for p in v] for k, v in planned.items()},
        combine=payload.combine,
        focus=payload.focus,
        active_id=id_map.get(payload.active_id or "", payload.active_id),
        excluded=[id_map.get(x, x) for x in payload.excluded],
    )
    for item in dropped:
        if item["id"] in report.pending:
            report.pending.remove(item["id"])
        report.failed.pop(item["id"], None)
        report.skipped.append(item)
    log_event(
        logger,
        "restore.complete",
        restored=len(report.restored),
        pending=len(report.pending),
        failed=len(report.failed),
        skipped=len(report.skipped),
    )
    return report

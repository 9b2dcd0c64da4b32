"""Merge per-search leaf sets and roll them up to city/county/state.

`aggregate` is a pure function of its inputs and is always recomputed from
scratch; no incremental patching.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from geo_multisearch.models import (
    AggregateRecord,
    AggregationResult,
    LeafRecord,
    Provenance,
    SearchEntry,
)
from geo_multisearch.states import state_name


def allowed_ids(
    entries: Sequence[SearchEntry],
    excluded_ids: Iterable[str],
    combine: bool,
    active_id: Optional[str],
) -> List[str]:
    excluded = set(excluded_ids or ())
    active = [e.id for e in entries]
    if combine:
        return [sid for sid in active if sid not in excluded]
    if active_id and active_id in active and active_id not in excluded:
        return [active_id]
    return []


def merge_leaves(
    entries: Sequence[SearchEntry],
    result_index: Any,
    ids: Sequence[str],
) -> List[LeafRecord]:
    """Union leaf sets by key; first-seen display fields win, provenance accumulates.

    Returned leaves carry their own measure dicts, never the ones held by
    `result_index`.
    """

    sequence_of = {e.id: e.sequence for e in entries}
    merged: "OrderedDict[str, Tuple[LeafRecord, List[Provenance]]]" = OrderedDict()
    for sid in ids:
        tag = Provenance(search_id=sid, sequence=sequence_of[sid])
        for leaf in result_index.get(sid) or ():
            slot = merged.get(leaf.key)
            if slot is None:
                merged[leaf.key] = (leaf, [tag])
            elif tag not in slot[1]:
                slot[1].append(tag)
    return [
        replace(leaf, measures=dict(leaf.measures), provenance=tuple(tags))
        for leaf, tags in merged.values()
    ]


def _average(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def _sum_measures(items: Sequence[LeafRecord]) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for leaf in items:
        for name, value in leaf.measures.items():
            totals[name] = totals.get(name, 0.0) + float(value or 0)
    return totals


def _distinct(values: Iterable[str]) -> int:
    return len({v for v in values if v})


def _rollup(
    level: str,
    groups: "OrderedDict[Tuple[str, ...], List[LeafRecord]]",
    build: Callable[[Tuple[str, ...], List[LeafRecord]], Dict[str, Any]],
) -> Tuple[AggregateRecord, ...]:
    out: List[AggregateRecord] = []
    for key, items in groups.items():
        search_ids: List[str] = []
        sequences = set()
        for leaf in items:
            for p in leaf.provenance:
                if p.search_id not in search_ids:
                    search_ids.append(p.search_id)
                sequences.add(p.sequence)
        coords = [leaf for leaf in items if leaf.has_coordinates]
        out.append(
            AggregateRecord(
                level=level,
                lat=_average([float(leaf.lat) for leaf in coords]),
                lng=_average([float(leaf.lng) for leaf in coords]),
                measures=_sum_measures(items),
                leaf_count=len(items),
                search_ids=tuple(search_ids),
                sequences=tuple(sorted(sequences)),
                **build(key, items),
            )
        )
    out.sort(key=lambda a: (a.name.casefold(), a.name, a.id))
    return tuple(out)


def roll_up(leaves: Sequence[LeafRecord]) -> Tuple[
    Tuple[AggregateRecord, ...], Tuple[AggregateRecord, ...], Tuple[AggregateRecord, ...]
]:
    cities: "OrderedDict[Tuple[str, ...], List[LeafRecord]]" = OrderedDict()
    counties: "OrderedDict[Tuple[str, ...], List[LeafRecord]]" = OrderedDict()
    states: "OrderedDict[Tuple[str, ...], List[LeafRecord]]" = OrderedDict()

    # A leaf missing one level still rolls into the others.
    for leaf in leaves:
        if leaf.city:
            cities.setdefault((leaf.city, leaf.state, leaf.county), []).append(leaf)
        if leaf.county:
            counties.setdefault((leaf.county, leaf.state), []).append(leaf)
        if leaf.state:
            states.setdefault((leaf.state,), []).append(leaf)

    city_rows = _rollup(
        "city",
        cities,
        lambda key, _items: {
            "id": f"city-{key[0]}-{key[1]}-{key[2]}",
            "name": key[0],
            "state": key[1],
            "county": key[2],
        },
    )
    county_rows = _rollup(
        "county",
        counties,
        lambda key, items: {
            "id": f"county-{key[0]}-{key[1]}",
            "name": key[0],
            "state": key[1],
            "city_count": _distinct(leaf.city for leaf in items),
        },
    )
    state_rows = _rollup(
        "state",
        states,
        lambda key, items: {
            "id": f"state-{key[0]}",
            "name": state_name(key[0]),
            "state": key[0],
            "city_count": _distinct(leaf.city for leaf in items),
            "county_count": _distinct(leaf.county for leaf in items),
        },
    )
    return city_rows, county_rows, state_rows


def aggregate(
    entries: Sequence[SearchEntry],
    result_index: Any,
    excluded_ids: Iterable[str],
    combine: bool,
    active_id: Optional[str],
) -> AggregationResult:
    """Build the merged leaf view and its rollups.

    `entries` must be in registry order; `result_index` is anything with a
    `.get(search_id)` returning a leaf sequence (a ResultIndex or a plain dict).
    """

    ids = allowed_ids(entries, excluded_ids, combine, active_id)
    if not ids:
        return AggregationResult()
    leaves = merge_leaves(entries, result_index, ids)
    cities, counties, states = roll_up(leaves)
    return AggregationResult(
        leaves=tuple(leaves),
        cities=cities,
        counties=counties,
        states=states,
    )

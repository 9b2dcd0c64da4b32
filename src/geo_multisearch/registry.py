from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from geo_multisearch.allocator import color_for, next_sequence
from geo_multisearch.errors import UnknownSearchError
from geo_multisearch.log import log_event
from geo_multisearch.models import (
    FAMILY_ORDER,
    LeafRecord,
    SearchEntry,
    SearchKind,
    SearchSettings,
)
from geo_multisearch.result_index import ResultIndex


logger = logging.getLogger("gms.registry")

SettingsUpdate = Union[
    SearchSettings,
    Dict[str, Any],
    Callable[[SearchSettings], SearchSettings],
]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def summarize(leaves: Sequence[LeafRecord]) -> Dict[str, Optional[str]]:
    first = leaves[0] if leaves else None
    return {
        "zip": first.key if first else None,
        "city": (first.city or None) if first else None,
        "state": (first.state or None) if first else None,
    }


class SearchRegistry:
    """Active search entries per family, plus their leaf sets and exclusions.

    Each family is kept newest-first and holds at most `history_cap` entries.
    Every mutation keeps the Result Index key set equal to the active ids.
    """

    def __init__(self, *, history_cap: int = 6, index: Optional[ResultIndex] = None) -> None:
        if history_cap < 1:
            raise ValueError("history_cap must be >= 1")
        self.history_cap = int(history_cap)
        self.index = index if index is not None else ResultIndex()
        self._families: Dict[SearchKind, List[SearchEntry]] = {k: [] for k in FAMILY_ORDER}
        self._excluded: Dict[str, None] = {}

    # -- reads -------------------------------------------------------------

    def entries(self, kind: Optional[SearchKind] = None) -> List[SearchEntry]:
        if kind is not None:
            return list(self._families[SearchKind(kind)])
        out: List[SearchEntry] = []
        for k in FAMILY_ORDER:
            out.extend(self._families[k])
        return out

    def get(self, search_id: str) -> SearchEntry:
        for family in self._families.values():
            for entry in family:
                if entry.id == search_id:
                    return entry
        raise UnknownSearchError(search_id)

    def find(self, search_id: Optional[str]) -> Optional[SearchEntry]:
        if not search_id:
            return None
        try:
            return self.get(search_id)
        except UnknownSearchError:
            return None

    def __contains__(self, search_id: object) -> bool:
        return isinstance(search_id, str) and self.find(search_id) is not None

    def __len__(self) -> int:
        return sum(len(f) for f in self._families.values())

    def leaves(self, search_id: str) -> tuple:
        return self.index.get(search_id)

    # -- mutations ---------------------------------------------------------

    def insert(self, draft: SearchEntry, leaves: Sequence[LeafRecord]) -> SearchEntry:
        """Store `draft` at the front of its family.

        An active entry of the same kind with the same signature is replaced;
        overflow beyond the cap evicts the oldest entries. The returned entry
        carries the allocated sequence and color.
        """

        if draft.id in self:
            raise ValueError(f"search id already active: {draft.id}")
        kind = SearchKind(draft.kind)
        family = self._families[kind]

        if draft.signature is not None:
            for existing in [e for e in family if e.signature == draft.signature]:
                self._drop(existing)
                log_event(
                    logger,
                    "search.replaced",
                    kind=str(kind),
                    search_id=existing.id,
                    replaced_by=draft.id,
                    signature=draft.signature,
                )

        entry = self._materialize(draft, leaves)
        family.insert(0, entry)
        self.index.put(entry.id, leaves)

        while len(family) > self.history_cap:
            evicted = family[-1]
            self._drop(evicted)
            log_event(
                logger,
                "search.evicted",
                kind=str(kind),
                search_id=evicted.id,
                sequence=evicted.sequence,
            )
        return entry

    def append(self, draft: SearchEntry, leaves: Sequence[LeafRecord]) -> Optional[SearchEntry]:
        """Restore path: add `draft` at the back of its family.

        Returns None (nothing stored) when the family is full or an active entry
        already has the same signature.
        """

        if draft.id in self:
            raise ValueError(f"search id already active: {draft.id}")
        family = self._families[SearchKind(draft.kind)]
        if len(family) >= self.history_cap:
            return None
        if draft.signature is not None and any(e.signature == draft.signature for e in family):
            return None
        entry = self._materialize(draft, leaves)
        family.append(entry)
        self.index.put(entry.id, leaves)
        return entry

    def remove(self, search_id: str) -> SearchEntry:
        entry = self.get(search_id)
        self._drop(entry)
        return entry

    def replace_results(self, search_id: str, leaves: Sequence[LeafRecord]) -> SearchEntry:
        entry = self.get(search_id)
        updated = replace(entry, result_count=len(leaves), summary=summarize(leaves))
        self._swap(updated)
        self.index.put(search_id, leaves)
        return updated

    def update_settings(self, search_id: str, update: SettingsUpdate) -> SearchEntry:
        """Apply a settings transform; sequence, signature and membership are untouched."""

        entry = self.get(search_id)
        if callable(update):
            settings = update(entry.settings)
        elif isinstance(update, SearchSettings):
            settings = update
        else:
            settings = SearchSettings.from_dict({**entry.settings.to_dict(), **dict(update)})
        if not isinstance(settings, SearchSettings):
            raise TypeError("settings update must produce SearchSettings")
        updated = replace(entry, settings=settings)
        self._swap(updated)
        return updated

    def rename(self, search_id: str, label: str) -> SearchEntry:
        entry = self.get(search_id)
        cleaned = (label or "").strip()
        if not cleaned:
            return entry
        updated = replace(entry, label=cleaned)
        self._swap(updated)
        return updated

    def set_excluded(self, search_id: str, excluded: bool) -> None:
        self.get(search_id)
        if excluded:
            self._excluded[search_id] = None
        else:
            self._excluded.pop(search_id, None)

    def is_excluded(self, search_id: str) -> bool:
        return search_id in self._excluded

    def excluded_ids(self) -> List[str]:
        return list(self._excluded)

    def clear(self) -> None:
        for family in self._families.values():
            family.clear()
        self.index.clear()
        self._excluded.clear()

    # -- internals ---------------------------------------------------------

    def _drop(self, entry: SearchEntry) -> None:
        family = self._families[SearchKind(entry.kind)]
        family[:] = [e for e in family if e.id != entry.id]
        self.index.pop(entry.id)
        self._excluded.pop(entry.id, None)

    def _swap(self, updated: SearchEntry) -> None:
        family = self._families[SearchKind(updated.kind)]
        family[:] = [updated if e.id == updated.id else e for e in family]

    def _materialize(self, draft: SearchEntry, leaves: Sequence[LeafRecord]) -> SearchEntry:
        kind = SearchKind(draft.kind)
        sequence = next_sequence(self._families[kind])
        return replace(
            draft,
            kind=kind,
            sequence=sequence,
            color=color_for(sequence),
            timestamp=draft.timestamp or utc_now_iso(),
            result_count=len(leaves),
            summary=summarize(leaves),
        )

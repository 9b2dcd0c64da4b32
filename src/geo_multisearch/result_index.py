from __future__ import annotations

from typing import Dict, Iterator, List, Sequence, Tuple

from geo_multisearch.models import LeafRecord


class ResultIndex:
    """search id -> normalized leaf list.

    Mutated only by `SearchRegistry`, which keeps its key set equal to the set
    of active entry ids.
    """

    def __init__(self) -> None:
        self._leaves: Dict[str, Tuple[LeafRecord, ...]] = {}

    def put(self, search_id: str, leaves: Sequence[LeafRecord]) -> None:
        self._leaves[search_id] = tuple(leaves)

    def pop(self, search_id: str) -> Tuple[LeafRecord, ...]:
        return self._leaves.pop(search_id, ())

    def get(self, search_id: str) -> Tuple[LeafRecord, ...]:
        return self._leaves.get(search_id, ())

    def clear(self) -> None:
        self._leaves.clear()

    def ids(self) -> List[str]:
        return list(self._leaves)

    def __contains__(self, search_id: object) -> bool:
        return search_id in self._leaves

    def __len__(self) -> int:
        return len(self._leaves)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._leaves))

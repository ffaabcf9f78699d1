"""Sector hierarchy expansion for damage/loss filtering."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable, List

from .models import Sector

_log = logging.getLogger(__name__)

LEAF_SECTOR_LEVEL = 4


class SectorExpander:
    """Resolves a selected sector into the set of sector ids to filter on.

    Parent edges are the authoritative hierarchy. Sector ids are also laid
    out so that children extend their parent's id as a string prefix (11 ->
    1101 -> 110101); that encoding is consulted only when
    ``prefix_expansion`` is set, otherwise disagreements are just logged.
    """

    def __init__(
        self,
        sectors: Iterable[Sector],
        *,
        leaf_level: int = LEAF_SECTOR_LEVEL,
        prefix_expansion: bool = False,
    ) -> None:
        self._by_id: dict[int, Sector] = {s.id: s for s in sectors}
        self._children: dict[int, list[int]] = defaultdict(list)
        for sector in self._by_id.values():
            if sector.parent_id is not None:
                self._children[sector.parent_id].append(sector.id)
        self.leaf_level = leaf_level
        self.prefix_expansion = prefix_expansion

    def get(self, sector_id: int) -> Sector | None:
        return self._by_id.get(sector_id)

    def is_leaf(self, sector_id: int) -> bool:
        sector = self._by_id.get(sector_id)
        return sector is not None and sector.level >= self.leaf_level

    def children(self, sector_id: int) -> List[Sector]:
        return [self._by_id[c] for c in self._children.get(sector_id, [])]

    def edge_descendants(self, sector_id: int) -> set[int]:
        visited = {sector_id}
        queue = deque([sector_id])
        while queue:
            current = queue.popleft()
            for child in self._children.get(current, []):
                if child not in visited:
                    visited.add(child)
                    queue.append(child)
        return visited

    def prefix_descendants(self, sector_id: int) -> set[int]:
        prefix = str(sector_id)
        return {
            sid
            for sid in self._by_id
            if len(str(sid)) > len(prefix) and str(sid).startswith(prefix)
        }

    def expand(self, sector_id: int) -> set[int]:
        """The sector plus all descendants; empty set for an unknown sector."""
        if sector_id not in self._by_id:
            _log.warning("Unknown sector id %s", sector_id)
            return set()
        if self.is_leaf(sector_id):
            return {sector_id}

        expanded = self.edge_descendants(sector_id)
        by_prefix = self.prefix_descendants(sector_id)
        if self.prefix_expansion:
            expanded |= by_prefix
        else:
            disagreement = by_prefix - expanded
            if disagreement:
                _log.debug(
                    "Sector %s: %d prefix-only descendants ignored: %s",
                    sector_id,
                    len(disagreement),
                    sorted(disagreement)[:10],
                )
        return expanded

    def ancestors(self, sector_id: int) -> List[int]:
        """Parent chain from the sector up to its root, stopping at a loop."""
        chain: list[int] = []
        seen = {sector_id}
        current = self._by_id.get(sector_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                _log.warning("Sector parent loop detected at %s", current.parent_id)
                break
            seen.add(current.parent_id)
            chain.append(current.parent_id)
            current = self._by_id.get(current.parent_id)
        return chain

    def is_descendant(self, sector_id: int, ancestor_id: int) -> bool:
        return sector_id == ancestor_id or ancestor_id in self.ancestors(sector_id)

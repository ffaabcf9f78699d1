"""Administrative division hierarchy: descendants, breadcrumbs and name lookup."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Iterable, List

from .models import Division
from .normalize import normalize_place_name, simplify_place_name
from .similarity import DivisionMatch, NormalizedDivision, find_matching_divisions

_log = logging.getLogger(__name__)


class NormalizedDivisionCache:
    """Normalized name forms keyed by ``(division id, display name)``.

    Owned by one ``DivisionTree``; call ``clear()`` when the division table
    changes underneath it.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[int, str], NormalizedDivision] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, division: Division, name: str) -> NormalizedDivision:
        key = (division.id, name)
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        entry = NormalizedDivision(
            id=division.id,
            original=name,
            normalized=normalize_place_name(name),
            simple=simplify_place_name(name),
            level=division.level,
            parent_id=division.parent_id,
        )
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0


class DivisionTree:
    """In-memory parent/child index over the full division table."""

    def __init__(
        self,
        divisions: Iterable[Division],
        *,
        name_languages: Iterable[str] = ("en",),
        cache: NormalizedDivisionCache | None = None,
    ) -> None:
        self._by_id: dict[int, Division] = {}
        self._children: dict[int, list[int]] = defaultdict(list)
        self.name_languages = tuple(name_languages)
        self.cache = cache if cache is not None else NormalizedDivisionCache()

        for division in divisions:
            if division.id in self._by_id:
                _log.warning("Duplicate division id %s; keeping the last row", division.id)
            self._by_id[division.id] = division
        for division in self._by_id.values():
            if division.parent_id is not None:
                self._children[division.parent_id].append(division.id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, division_id: object) -> bool:
        return division_id in self._by_id

    def get(self, division_id: int) -> Division | None:
        return self._by_id.get(division_id)

    def all(self) -> List[Division]:
        return list(self._by_id.values())

    def roots(self) -> List[Division]:
        return [d for d in self._by_id.values() if d.parent_id is None]

    def at_level(self, level: int) -> List[Division]:
        return [d for d in self._by_id.values() if d.level == level]

    def children(self, division_id: int) -> List[Division]:
        return [self._by_id[c] for c in self._children.get(division_id, []) if c in self._by_id]

    def resolve_descendants(self, division_id: int) -> set[int]:
        """The division plus every descendant, breadth first.

        The visited set bounds the walk, so a cyclic parent graph still
        terminates.
        """
        visited = {division_id}
        queue = deque([division_id])
        while queue:
            current = queue.popleft()
            for child in self._children.get(current, []):
                if child not in visited:
                    visited.add(child)
                    queue.append(child)
        return visited

    def breadcrumb(self, division_id: int) -> List[Division]:
        """Root-to-target chain; stops early at a missing parent or a cycle."""
        chain: list[Division] = []
        seen: set[int] = set()
        current: int | None = division_id
        while current is not None and current not in seen:
            division = self._by_id.get(current)
            if division is None:
                if chain:
                    _log.warning(
                        "Division %s references missing parent %s", chain[0].id, current
                    )
                break
            seen.add(current)
            chain.append(division)
            current = division.parent_id
        if current is not None and current in seen:
            _log.warning("Parent cycle detected at division %s", current)
        chain.reverse()
        return chain

    def display_name(self, division: Division) -> str:
        return division.display_name(self.name_languages)

    def known_names(self) -> set[str]:
        """Every display name of every division, in any language."""
        return {name for d in self._by_id.values() for name in d.name.values() if name}

    def names_for(self, division_ids: Iterable[int]) -> set[str]:
        names: set[str] = set()
        for division_id in division_ids:
            division = self._by_id.get(division_id)
            if division is not None:
                names.update(n for n in division.name.values() if n)
        return names

    def normalized(self, division: Division) -> NormalizedDivision:
        return self.cache.get(division, self.display_name(division))

    def match_location(
        self,
        location: str,
        *,
        threshold: float = 0.6,
        word_bonus: float = 0.2,
        min_word_length: int = 3,
        level: int | None = None,
    ) -> List[DivisionMatch]:
        candidates = self.at_level(level) if level is not None else self.all()
        return find_matching_divisions(
            location,
            (self.normalized(d) for d in candidates),
            threshold=threshold,
            word_bonus=word_bonus,
            min_word_length=min_word_length,
        )

"""Edit-distance confidence scoring between free text and division names."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from rapidfuzz.distance import Levenshtein

from .normalize import normalize_place_name

_log = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.6
DEFAULT_WORD_BONUS = 0.2
DEFAULT_MIN_WORD_LENGTH = 3


@dataclass(frozen=True)
class NormalizedDivision:
    id: int
    original: str
    normalized: str
    simple: str
    level: int | None = None
    parent_id: int | None = None


@dataclass(frozen=True)
class DivisionMatch:
    division: NormalizedDivision
    confidence: float


def similarity_score(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``; two empty strings score 1.0."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def _word_bonus(location: str, simple: str, *, bonus: float, min_word_length: int) -> float:
    division_words = [w for w in simple.split(" ") if w]
    score = 0.0
    for word in location.split(" "):
        if len(word) < min_word_length:
            continue
        if any(dw in word or word in dw for dw in division_words):
            score += bonus
    return score


def match_confidence(
    location: str,
    division: NormalizedDivision,
    *,
    word_bonus: float = DEFAULT_WORD_BONUS,
    min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
) -> float:
    """Confidence in [0, 1] that ``location`` names ``division``.

    Exact equality with either normalized form scores 1.0. Otherwise the best
    edit-distance similarity against the full and simplified forms, plus a
    bonus for each location word that overlaps a word of the simplified name.
    """
    location_norm = normalize_place_name(location)
    if location_norm and location_norm in (division.simple, division.normalized):
        return 1.0

    best = max(
        similarity_score(location_norm, division.simple),
        similarity_score(location_norm, division.normalized),
    )
    bonus = _word_bonus(
        location_norm, division.simple, bonus=word_bonus, min_word_length=min_word_length
    )
    return min(1.0, best + bonus)


def find_matching_divisions(
    location: str,
    divisions: Iterable[NormalizedDivision],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    word_bonus: float = DEFAULT_WORD_BONUS,
    min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
) -> List[DivisionMatch]:
    """Return divisions scoring above ``threshold``, best first.

    Ties keep their input order; callers take the head or the whole list.
    """
    if not location or not location.strip():
        return []

    matches = []
    for division in divisions:
        confidence = match_confidence(
            location, division, word_bonus=word_bonus, min_word_length=min_word_length
        )
        if confidence > threshold:
            matches.append(DivisionMatch(division=division, confidence=confidence))

    matches.sort(key=lambda m: m.confidence, reverse=True)
    _log.debug(
        "Location %r matched %d divisions: %s",
        location,
        len(matches),
        [(m.division.original, round(m.confidence, 3)) for m in matches[:5]],
    )
    return matches

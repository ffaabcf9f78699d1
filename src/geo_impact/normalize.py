"""Place-name canonicalization for division matching."""

from __future__ import annotations

import re
import unicodedata

_ADMIN_TERMS_RE = re.compile(r"\b(region|province|city|municipality)\b")
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s,-]")
_PARENTHETICAL_RE = re.compile(r"\s*\(.*?\)\s*")
_SPACES_RE = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_place_name(value: str | None) -> str:
    """Lower-case, strip diacritics and punctuation, drop admin-unit words."""
    if not value:
        return ""
    text = strip_diacritics(value.lower())
    text = _SPECIAL_CHARS_RE.sub(" ", text)
    text = _ADMIN_TERMS_RE.sub("", text)
    return _SPACES_RE.sub(" ", text).strip()


def simplify_place_name(value: str | None) -> str:
    """Normalized name with parenthetical qualifiers such as "(Capital)" removed."""
    if not value:
        return ""
    return normalize_place_name(_PARENTHETICAL_RE.sub(" ", value))


def contains_phrase(haystack: str, phrase: str) -> bool:
    """Word-boundary containment, so "niger" does not match "nigeria"."""
    term = " ".join(phrase.split())
    if not term:
        return False
    text = " ".join(haystack.split())
    pattern = r"(?<!\w)" + re.escape(term) + r"(?!\w)"
    return re.search(pattern, text) is not None

"""Flexible-precision date helpers (``YYYY``, ``YYYY-MM``, ``YYYY-MM-DD``)."""

from __future__ import annotations

import calendar
import re
from datetime import date

_YEAR_RE = re.compile(r"^(\d{4})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

MIN_YEAR = 1900
MAX_YEAR = 2100


def flexible_date_bounds(value: str | None) -> tuple[date, date] | None:
    """Return the first and last calendar day covered by a flexible date."""
    if not value:
        return None
    raw = str(value).strip()

    match = _YEAR_RE.match(raw)
    if match:
        year = int(match.group(1))
        if not MIN_YEAR <= year <= MAX_YEAR:
            return None
        return date(year, 1, 1), date(year, 12, 31)

    match = _MONTH_RE.match(raw)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12:
            return None
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, 1), date(year, month, last_day)

    match = _DAY_RE.match(raw)
    if match:
        year = int(match.group(1))
        if not MIN_YEAR <= year <= MAX_YEAR:
            return None
        try:
            day = date(year, int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None
        return day, day

    # Stored timestamps sometimes carry a time part.
    if len(raw) > 10 and _DAY_RE.match(raw[:10]):
        return flexible_date_bounds(raw[:10])
    return None


def extract_year(value: str | None) -> int | None:
    bounds = flexible_date_bounds(value)
    if bounds is None:
        return None
    return bounds[0].year


def within_date_range(
    start_date: str | None,
    end_date: str | None,
    *,
    from_date: str | None = None,
    to_date: str | None = None,
) -> bool:
    """Check a record's period against an inclusive filter range.

    A record is excluded only when its period certainly falls outside the
    range: its latest possible start precedes the start of ``from_date``, or
    its earliest possible end (start, when no end is recorded) follows the end
    of ``to_date``. Records with unparseable dates fail any active bound.
    """
    if from_date:
        lower = flexible_date_bounds(from_date)
        start = flexible_date_bounds(start_date)
        if lower is None or start is None or start[1] < lower[0]:
            return False
    if to_date:
        upper = flexible_date_bounds(to_date)
        end = flexible_date_bounds(end_date) or flexible_date_bounds(start_date)
        if upper is None or end is None or end[0] > upper[1]:
            return False
    return True

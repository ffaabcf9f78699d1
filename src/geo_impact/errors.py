"""Exception types for the impact engine."""

from __future__ import annotations


class GeoImpactError(Exception):
    """Base class for engine errors."""


class InputError(GeoImpactError, ValueError):
    """Caller supplied an unusable value (unknown sector, malformed coordinates)."""

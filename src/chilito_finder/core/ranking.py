"""Ordering and filtering of discovered stores by distance from the search origin."""

from typing import Iterable, List

from .models import POIRecord


def rank(records: Iterable[POIRecord]) -> List[POIRecord]:
    """Sort ascending by distance; equal distances fall back to source_key so the order is stable."""
    return sorted(records, key=lambda r: (r.distance_km, r.source_key))


def filter_within_radius(records: Iterable[POIRecord], radius_km: float) -> List[POIRecord]:
    return [r for r in records if r.distance_km <= radius_km]


def dedupe_by_source_key(records: Iterable[POIRecord]) -> List[POIRecord]:
    """Keep the first record seen for every source_key."""
    seen = set()
    unique = []
    for record in records:
        if record.source_key not in seen:
            seen.add(record.source_key)
            unique.append(record)
    return unique

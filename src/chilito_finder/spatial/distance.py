"""
Distance Module for the Chilito Finder
--------------------------------

This module provides the coordinate type used throughout the pipeline and the
great-circle arithmetic built on it.

Classes:
  GeoPoint:
    Immutable (lat, lng) pair validated to [-90, 90] / [-180, 180].

Functions:
  haversine_km(lat1, lng1, lat2, lng2) -> float:
    Great-circle distance between two coordinates in kilometers.

  distance_km(a, b) -> float:
    haversine_km applied to two GeoPoints.

  bounding_box(center, radius_m) -> tuple:
    Approximate (south, west, north, east) box around a point, using the
    fixed 111 km-per-degree conversion the Overpass query expects.

  parse_coordinates(text) -> GeoPoint | None:
    Parse "lat,lng" text (as produced by a device location provider).

  format_coordinates(point) -> str:
    Inverse of parse_coordinates.
"""

import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0
METERS_PER_DEGREE = 111000.0

_COORDINATE_TEXT = re.compile(
    r"^\s*\(?\s*([-+]?\d{1,3}(?:\.\d+)?)\s*[,\s]\s*([-+]?\d{1,3}(?:\.\d+)?)\s*\)?\s*$"
)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def __post_init__(self):
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"longitude out of range: {self.lng}")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlng = math.radians(lng2) - math.radians(lng1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    # Rounding can push `a` a hair above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def bounding_box(center: GeoPoint, radius_m: float) -> Tuple[float, float, float, float]:
    """Return (south, west, north, east) padded by `radius_m` in every direction."""
    radius_degrees = radius_m / METERS_PER_DEGREE
    return (
        center.lat - radius_degrees,
        center.lng - radius_degrees,
        center.lat + radius_degrees,
        center.lng + radius_degrees,
    )


def parse_coordinates(text: str) -> Optional[GeoPoint]:
    """Return a GeoPoint for "lat,lng" text, or None when the text is not coordinates."""
    match = _COORDINATE_TEXT.match(text or "")
    if not match:
        return None
    try:
        return GeoPoint(float(match.group(1)), float(match.group(2)))
    except ValueError:
        return None


def format_coordinates(point: GeoPoint) -> str:
    return f"{point.lat:.6f},{point.lng:.6f}"

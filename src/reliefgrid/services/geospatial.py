"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from shapely.geometry import Point, Polygon

from ..config import settings
from ..errors import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0


def validate_coordinate(lat: float, lon: float) -> None:
    for label, value, bound in (("latitude", lat, 90.0), ("longitude", lon, 180.0)):
        if value is None or not isinstance(value, (int, float)) or isinstance(value, bool):
            raise InvalidCoordinate(f"{label} must be a number, got {value!r}")
        if not math.isfinite(value) or abs(value) > bound:
            raise InvalidCoordinate(f"{label} {value} is outside [-{bound:g}, {bound:g}]")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula, rounded to 10 m."""

    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)


def travel_time_minutes(distance_km: float, minutes_per_km: float | None = None) -> int:
    """Linear travel-time estimate, rounded up to the next whole minute."""

    if not isinstance(distance_km, (int, float)) or not math.isfinite(distance_km) or distance_km < 0:
        raise InvalidCoordinate(f"distance must be a finite non-negative number, got {distance_km!r}")
    rate = minutes_per_km if minutes_per_km is not None else settings.minutes_per_km
    return math.ceil(distance_km * rate)


def point_in_polygon(lat: float, lon: float, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs."""

    if len(polygon_coords) < 3:
        return False
    polygon = Polygon([(lng, lat) for lat, lng in polygon_coords])
    return polygon.contains(Point(lon, lat))


def zone_containing(lat: float, lon: float, zones: Iterable) -> object | None:
    """First active zone whose boundary contains the point, if any."""

    validate_coordinate(lat, lon)
    for zone in zones:
        if not zone.is_active or not zone.boundary:
            continue
        if point_in_polygon(lat, lon, [tuple(pair) for pair in zone.boundary]):
            return zone
    return None

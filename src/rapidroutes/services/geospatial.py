"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Optional

from ..errors import InvalidCoordinate
from ..models.domain import Coordinate

EARTH_RADIUS_MILES = 3959.0
MILES_PER_DEGREE_LATITUDE = 69.0


def validate_coordinate(coordinate: Optional[Coordinate]) -> Coordinate:
    """Return the coordinate if it is usable for distance math, else raise InvalidCoordinate."""

    if coordinate is None:
        raise InvalidCoordinate("Coordinate is missing")
    lat, lon = coordinate.latitude, coordinate.longitude
    if lat is None or lon is None:
        raise InvalidCoordinate(f"Coordinate has missing component: {coordinate}")
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate(f"Coordinate is not numeric: {coordinate}") from exc
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinate(f"Coordinate is not finite: {coordinate}")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise InvalidCoordinate(f"Coordinate out of range: {coordinate}")
    return Coordinate(lat, lon)


def is_valid_coordinate(coordinate: Optional[Coordinate]) -> bool:
    try:
        validate_coordinate(coordinate)
    except InvalidCoordinate:
        return False
    return True


def haversine_miles(a: Optional[Coordinate], b: Optional[Coordinate]) -> float:
    """Compute great-circle distance in miles using the Haversine formula."""

    a = validate_coordinate(a)
    b = validate_coordinate(b)

    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_MILES * c


def bounding_box(center: Coordinate, radius_miles: float) -> tuple[float, float, float, float]:
    """Return (lat_min, lat_max, lon_min, lon_max) enclosing the search circle.

    The box is a cheap prefilter only; it is widened to the full longitude
    range near the poles and across the antimeridian so it never excludes a
    point that lies inside the circle.
    """

    center = validate_coordinate(center)
    if radius_miles < 0:
        raise ValueError("radius_miles must be >= 0")

    # Small pad keeps points sitting exactly on the circle inside the box.
    lat_delta = radius_miles / MILES_PER_DEGREE_LATITUDE * 1.01
    lat_min = max(-90.0, center.latitude - lat_delta)
    lat_max = min(90.0, center.latitude + lat_delta)

    if lat_min <= -90.0 or lat_max >= 90.0:
        return lat_min, lat_max, -180.0, 180.0

    # Use the latitude nearest the pole, where degrees of longitude are shortest.
    widest_lat = max(abs(lat_min), abs(lat_max))
    cos_lat = math.cos(math.radians(widest_lat))
    lon_delta = radius_miles / (MILES_PER_DEGREE_LATITUDE * cos_lat) * 1.01
    lon_min = center.longitude - lon_delta
    lon_max = center.longitude + lon_delta
    if lon_min < -180.0 or lon_max > 180.0:
        return lat_min, lat_max, -180.0, 180.0
    return lat_min, lat_max, lon_min, lon_max


def in_bounding_box(coordinate: Coordinate, box: tuple[float, float, float, float]) -> bool:
    lat_min, lat_max, lon_min, lon_max = box
    return lat_min <= coordinate.latitude <= lat_max and lon_min <= coordinate.longitude <= lon_max

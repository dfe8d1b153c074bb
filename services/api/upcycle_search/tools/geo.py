"""Great-circle distance and coordinate/radius validation.

Points in storage follow GeoJSON order, ``[longitude, latitude]``. Every
function here takes latitude first, as named arguments make explicit, so
callers unpacking stored coordinates must swap the axes.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Tuple

from upcycle_search.errors import InvalidSearchParameter

EARTH_RADIUS_KM = 6371.0
MAX_RADIUS_KM = 1000.0

MSG_COORDS_REQUIRED = "Latitude (lat) and longitude (lng) are required"
MSG_COORDS_NOT_NUMERIC = "Invalid latitude or longitude: must be valid numbers"
MSG_NULL_ISLAND = "Invalid coordinates: (0,0) is not a valid search location"
MSG_LAT_RANGE = "Invalid latitude. Must be between -90 and 90"
MSG_LNG_RANGE = "Invalid longitude. Must be between -180 and 180"
MSG_RADIUS_RANGE = "Invalid radius. Must be between 0 and 1000 kilometers"


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers between two points given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def round_km(value: float) -> float:
    # half-up to one decimal; Python's round() would send 2.25 to 2.2
    return math.floor(value * 10 + 0.5) / 10


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def is_null_island(lat: float, lng: float) -> bool:
    return lat == 0 and lng == 0


def validate_center(
    lat: Any,
    lng: Any,
    *,
    lat_field: str = "lat",
    lng_field: str = "lng",
) -> Tuple[float, float]:
    """Parse and validate a query centre, returning ``(lat, lng)`` floats."""
    if is_missing(lat) or is_missing(lng):
        field = lat_field if is_missing(lat) else lng_field
        raise InvalidSearchParameter(field, MSG_COORDS_REQUIRED)

    lat_f, lng_f = _to_float(lat), _to_float(lng)
    if lat_f is None or lng_f is None:
        field = lat_field if lat_f is None else lng_field
        raise InvalidSearchParameter(field, MSG_COORDS_NOT_NUMERIC)

    if is_null_island(lat_f, lng_f):
        raise InvalidSearchParameter(lat_field, MSG_NULL_ISLAND)
    if not -90 <= lat_f <= 90:
        raise InvalidSearchParameter(lat_field, MSG_LAT_RANGE)
    if not -180 <= lng_f <= 180:
        raise InvalidSearchParameter(lng_field, MSG_LNG_RANGE)
    return lat_f, lng_f


def parse_optional_center(
    lat: Any,
    lng: Any,
    *,
    lat_field: str = "latitude",
    lng_field: str = "longitude",
) -> Optional[Tuple[float, float]]:
    """Like :func:`validate_center` but for callers where a location is optional.

    A missing axis or the ``(0, 0)`` sentinel yields ``None``; anything else
    supplied must be numeric and in range.
    """
    if is_missing(lat) or is_missing(lng):
        return None
    lat_f, lng_f = _to_float(lat), _to_float(lng)
    if lat_f is not None and lng_f is not None and is_null_island(lat_f, lng_f):
        return None
    return validate_center(lat, lng, lat_field=lat_field, lng_field=lng_field)


def validate_radius(radius: Any, *, field: str = "radius") -> float:
    value = _to_float(radius)
    if value is None or value <= 0 or value > MAX_RADIUS_KM:
        raise InvalidSearchParameter(field, MSG_RADIUS_RANGE)
    return value


__all__ = [
    "EARTH_RADIUS_KM",
    "MAX_RADIUS_KM",
    "distance_km",
    "is_missing",
    "is_null_island",
    "parse_optional_center",
    "round_km",
    "validate_center",
    "validate_radius",
]

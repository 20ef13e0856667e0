"""Great-circle distance between event and observer coordinates."""
import math
from typing import Any, Optional

EARTH_RADIUS_KM = 6371


def parse_coordinate(value: Any) -> Optional[float]:
    """Parse a stored latitude/longitude; None when missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        coordinate = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(coordinate):
        return None
    return coordinate


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def distance_km(lat1, lon1, lat2, lon2) -> float:
    """
    Calculate haversine distance between two points in kilometers.

    Args:
        lat1: Latitude of the first point in degrees
        lon1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lon2: Longitude of the second point in degrees

    Returns:
        Distance in kilometers, or infinity if any coordinate is unknown
    """
    if not all(_is_number(value) for value in (lat1, lon1, lat2, lon2)):
        return math.inf

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    a = min(a, 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c

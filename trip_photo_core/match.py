import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .config import settings
from .models import Coordinate, MatchResult, Place

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

CoordinateLike = Union[Coordinate, Tuple[float, float]]


def _as_coordinate(coordinate: CoordinateLike) -> Coordinate:
    """Normalize a (lat, lng) tuple; out-of-range values raise ValueError."""
    if isinstance(coordinate, Coordinate):
        return coordinate
    lat, lng = coordinate
    return Coordinate(lat=lat, lng=lng)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points on a spherical Earth."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def find_nearest_place(
    coordinate: CoordinateLike,
    candidates: Iterable[Place],
    max_distance_meters: Optional[float] = None,
) -> Optional[MatchResult]:
    """
    Finds the closest candidate place within a search radius.

    A single pass keeps the running minimum and only replaces it on a strictly
    smaller distance, so on exact ties the earlier candidate wins.

    Args:
        coordinate: The recovered photo location.
        candidates: Places to match against, in caller-defined order.
        max_distance_meters: Search radius. Defaults to
                             settings.PLACE_MATCH_RADIUS_METERS.

    Returns:
        The nearest place and its distance, or None when nothing is in range.

    Raises:
        ValueError: On a negative radius or an out-of-range coordinate.
    """
    if max_distance_meters is None:
        max_distance_meters = settings.PLACE_MATCH_RADIUS_METERS
    if math.isnan(max_distance_meters) or max_distance_meters < 0:
        raise ValueError(
            f"max_distance_meters must be non-negative, got {max_distance_meters}"
        )

    origin = _as_coordinate(coordinate)

    nearest: Optional[Place] = None
    min_distance = math.inf

    for place in candidates:
        distance = haversine_distance(origin.lat, origin.lng, place.lat, place.lng)
        if distance <= max_distance_meters and distance < min_distance:
            min_distance = distance
            nearest = place

    if nearest is None:
        logger.debug(
            f"No place within {max_distance_meters}m of ({origin.lat}, {origin.lng})"
        )
        return None

    return MatchResult(place=nearest, distance_meters=min_distance)


def rank_places_by_distance(
    coordinate: CoordinateLike, places: Sequence[Place]
) -> List[Tuple[Place, float]]:
    """Returns every place paired with its distance, nearest first (stable on ties)."""
    origin = _as_coordinate(coordinate)
    ranked = [
        (place, haversine_distance(origin.lat, origin.lng, place.lat, place.lng))
        for place in places
    ]
    ranked.sort(key=lambda item: item[1])
    return ranked

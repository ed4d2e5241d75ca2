"""
distance_utils.py
Great-circle distance helpers used for ranking experiences around a point
"""

import math
from typing import List, Optional

from models import Coordinate, Experience, RankedExperience

EARTH_RADIUS_KM = 6371.0


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres between two points.

    Inputs are not validated: NaN coordinates yield NaN rather than an error.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
         * math.sin(d_lng / 2) ** 2)
    # Rounding can push a just past 1 for antipodal points
    if a > 1.0:
        a = 1.0

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a, b) -> float:
    """Distance between two objects exposing ``lat``/``lng``"""
    return calculate_distance(a.lat, a.lng, b.lat, b.lng)


def distance_to(experience: Experience, point: Coordinate) -> float:
    return calculate_distance(point.lat, point.lng, experience.latitude, experience.longitude)


def sort_by_distance(experiences: List[Experience],
                     reference_point: Optional[Coordinate]) -> List[RankedExperience]:
    """Nearest-first ordering; source order is kept when there is no reference point"""
    if reference_point is None:
        return [RankedExperience(experience=e) for e in experiences]

    ranked = [RankedExperience(experience=e, distance_km=distance_to(e, reference_point))
              for e in experiences]
    ranked.sort(key=lambda r: r.distance_km)
    return ranked


def format_distance(distance_km: float) -> str:
    """Human readable distance: metres below 1 km, otherwise kilometres"""
    if distance_km < 1:
        return f"{round(distance_km * 1000)}m"
    return f"{distance_km:.1f}km"

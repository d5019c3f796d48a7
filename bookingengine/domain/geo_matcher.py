"""
Location matching: decides which providers serve a customer's address.

Pure functions over GeoPoint/ServiceArea, no I/O.
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence

from .models import GeoPoint, Provider

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Tolerance for the on-edge test, in degrees squared
_EDGE_EPSILON = 1e-12


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """
    Calculate the great-circle distance between two points.

    Args:
        a: First point in decimal degrees
        b: Second point in decimal degrees

    Returns:
        Distance in kilometres
    """
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def _on_segment(point: GeoPoint, p: GeoPoint, q: GeoPoint) -> bool:
    cross = (q.lng - p.lng) * (point.lat - p.lat) - (q.lat - p.lat) * (point.lng - p.lng)
    if abs(cross) > _EDGE_EPSILON:
        return False
    return (
        min(p.lng, q.lng) <= point.lng <= max(p.lng, q.lng)
        and min(p.lat, q.lat) <= point.lat <= max(p.lat, q.lat)
    )


def point_in_polygon(point: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """
    Ray casting test with longitude as x and latitude as y.

    Points lying exactly on an edge or vertex count as inside.
    Polygons with fewer than three vertices contain nothing.
    """
    n = len(polygon)
    if n < 3:
        return False

    for i in range(n):
        if _on_segment(point, polygon[i], polygon[i - 1]):
            return True

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].lng, polygon[i].lat
        xj, yj = polygon[j].lng, polygon[j].lat
        if (yi > point.lat) != (yj > point.lat):
            x_cross = (xj - xi) * (point.lat - yi) / (yj - yi) + xi
            if point.lng < x_cross:
                inside = not inside
        j = i
    return inside


def _has_coordinates(point: Optional[GeoPoint]) -> bool:
    return point is not None and point.lat is not None and point.lng is not None


def is_served_by(location: Optional[GeoPoint], provider: Provider) -> bool:
    """
    Check if a provider's service area covers a location.

    The polygon is tried first; the radius is the fallback when there is no
    polygon or the point is outside it. Missing coordinates never match.
    """
    if not _has_coordinates(location):
        return False

    area = provider.service_area
    if area is None:
        return False

    if area.has_polygon() and point_in_polygon(location, area.polygon):
        return True

    if area.radius_km is not None and _has_coordinates(area.center):
        return haversine_distance(location, area.center) <= area.radius_km

    return False


def _matches_gender(provider: Provider, gender: Optional[str]) -> bool:
    if gender is None or gender.lower() == "any":
        return True
    return (provider.gender or "").lower() == gender.lower()


def filter_providers(
    providers: Iterable[Provider],
    location: Optional[GeoPoint],
    service_id: Optional[str] = None,
    gender: Optional[str] = None,
) -> List[Provider]:
    """
    Select the providers who can take a booking at a location.

    Keeps active providers offering the service, matching the gender
    preference and serving the location. Sorted nearest first; providers
    without a known center come last, ordered by id.
    """
    matched: List[Provider] = []
    for provider in providers:
        if not provider.is_active:
            continue
        if not provider.offers(service_id):
            continue
        if not _matches_gender(provider, gender):
            continue
        if not is_served_by(location, provider):
            logger.debug("Provider %s does not serve %s", provider.id, location)
            continue
        matched.append(provider)

    def sort_key(provider: Provider):
        area = provider.service_area
        if area is not None and _has_coordinates(area.center):
            return (0, haversine_distance(location, area.center), provider.id)
        return (1, 0.0, provider.id)

    return sorted(matched, key=sort_key)

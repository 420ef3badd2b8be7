"""
Geofence validation service.
Uses Haversine formula to calculate distance between points.
"""
import math
from typing import Optional, Tuple

from ..config import settings
from ..schemas.scans import GeofenceResult

Location = Tuple[Optional[float], Optional[float]]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    R = 6371000

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def _present(location: Optional[Location]) -> bool:
    return location is not None and location[0] is not None and location[1] is not None


def validate(
    device: Optional[Location],
    site: Optional[Location],
    threshold_m: Optional[float] = None,
    enforced: Optional[bool] = None,
) -> GeofenceResult:
    """
    Check that a device is within `threshold_m` of the site.

    Args:
        device: (lat, lng) reported by the phone, or None
        site: (lat, lng) of the site, or None
        threshold_m: Radius in meters (default GEO_RADIUS_M_DEFAULT)
        enforced: Reject out-of-range scans (default GEOFENCE_ENFORCED)

    Returns:
        GeofenceResult. Skipped when either location is unknown. When
        enforcement is off an out-of-range scan is still valid and carries
        the warning message.
    """
    if not _present(device) or not _present(site):
        return GeofenceResult(valid=True, skipped=True)

    if threshold_m is None:
        threshold_m = settings.geo_radius_m_default
    if enforced is None:
        enforced = settings.geofence_enforced

    distance = haversine_distance(device[0], device[1], site[0], site[1])
    if distance <= threshold_m:
        return GeofenceResult(valid=True, distance_m=round(distance, 1))

    message = f"You are {distance:.0f}m away from the site (limit {threshold_m:.0f}m)"
    return GeofenceResult(valid=not enforced, distance_m=round(distance, 1), message=message)

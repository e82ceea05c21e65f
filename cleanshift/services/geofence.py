"""
Geofence validation service.
Uses Haversine formula to calculate distance between points.
"""
import math

from ..errors import GeofenceError, ValidationError


# GPS precision floor for clock-in/out, in meters
MAX_GPS_ACCURACY_M = 80

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters (NaN in, NaN out)
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def check_site_configured(site) -> None:
    """
    A site needs coordinates and a positive radius before anyone can clock in.
    Reported as a validation error, distinct from being too far away.
    """
    if site is None or site.lat is None or site.lng is None:
        raise ValidationError("Site has no coordinates; clock-in/out is not possible")
    if site.radius is None or site.radius <= 0:
        raise ValidationError("Site has no geofence radius; clock-in/out is not possible")


def check_inside_geofence(site, lat: float, lng: float, accuracy_m: float) -> float:
    """
    Gate a clock-in/out on GPS quality and distance to the site.

    Returns:
        Measured distance in meters

    Raises:
        ValidationError: site is missing coordinates or radius
        GeofenceError: accuracy is worse than MAX_GPS_ACCURACY_M, or caller is outside the radius
    """
    check_site_configured(site)

    if accuracy_m > MAX_GPS_ACCURACY_M:
        raise GeofenceError(
            f"GPS accuracy too low: {round(accuracy_m)}m (need <= {MAX_GPS_ACCURACY_M}m)",
            accuracy_m=accuracy_m,
            max_accuracy_m=MAX_GPS_ACCURACY_M,
            radius_m=site.radius,
        )

    distance = haversine_distance(lat, lng, site.lat, site.lng)
    if not distance <= site.radius:
        raise GeofenceError(
            f"{round(distance)}m > {site.radius}m",
            distance_m=distance,
            radius_m=site.radius,
            accuracy_m=accuracy_m,
            max_accuracy_m=MAX_GPS_ACCURACY_M,
        )
    return distance

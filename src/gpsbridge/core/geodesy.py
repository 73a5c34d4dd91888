"""Great-circle distance between two coordinates."""

import math

# Mean Earth radius (IUGG), meters
EARTH_RADIUS_METERS = 6_371_008.8


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the haversine distance in meters between two points in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Clamp rounding noise for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))

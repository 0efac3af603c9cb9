"""
Great-circle distance between two coordinates.

Haversine formula on a spherical Earth. Accurate to well under 1% at the
distances a home geofence cares about.
"""

import math

from .exceptions import ComputationAnomalyError, InvalidCoordinateError
from .models import Coordinate

EARTH_RADIUS_METERS = 6371000

# Roughly half the Earth's circumference; larger results are anomalies
MAX_DISTANCE_METERS = 20003931


def validate_coordinates(latitude, longitude) -> bool:
    """Check that a latitude/longitude pair is finite and in range."""
    try:
        Coordinate(latitude, longitude)
    except InvalidCoordinateError:
        return False
    return True


def distance(a: Coordinate, b: Coordinate) -> float:
    """Calculate distance between two points in meters using the Haversine formula.

    Raises:
        InvalidCoordinateError: If either point is not a valid Coordinate
        ComputationAnomalyError: If the result is outside [0, half circumference]
    """
    for point in (a, b):
        if not isinstance(point, Coordinate):
            raise InvalidCoordinateError(f"Expected Coordinate, got {type(point).__name__}")

    lat1_rad = math.radians(a.latitude)
    lat2_rad = math.radians(b.latitude)
    delta_lat = math.radians(b.latitude - a.latitude)
    delta_lon = math.radians(b.longitude - a.longitude)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    meters = EARTH_RADIUS_METERS * c

    if not 0 <= meters <= MAX_DISTANCE_METERS:
        raise ComputationAnomalyError(f"Distance out of bounds: {meters}")

    return meters


def format_distance(meters: float) -> str:
    """Human readable distance: "85m" below a kilometer, "1.2km" above."""
    if meters is None or math.isnan(meters) or meters < 0:
        return "unknown"
    if meters < 1000:
        return f"{round(meters)}m"
    return f"{meters / 1000:.1f}km"


def format_coordinates(coordinate: Coordinate) -> str:
    return f"{coordinate.latitude:.6f}, {coordinate.longitude:.6f}"

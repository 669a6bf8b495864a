"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
"""

from dataclasses import dataclass
from math import radians, cos, sin, atan2, sqrt

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    @classmethod
    def from_values(cls, latitude, longitude):
        """Build coordinates from DB/Decimal values; None if either is missing."""
        if latitude is None or longitude is None:
            return None
        return cls(float(latitude), float(longitude))

    def as_lon_lat(self) -> str:
        """Format as "lon,lat" the way Mapbox/OSRM path segments expect."""
        return f"{self.longitude},{self.latitude}"


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points in kilometers using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    """Haversine distance between two Coordinates, in kilometers."""
    return calculate_distance(
        origin.latitude, origin.longitude,
        destination.latitude, destination.longitude,
    )


def round_km(distance_km: float) -> float:
    """Round a distance to two decimals for presentation only."""
    return round(distance_km, 2)

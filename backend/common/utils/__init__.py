"""Common utility functions."""

from .clock import FrozenClock, SystemClock
from .geo import (
    EARTH_RADIUS_KM,
    Coordinates,
    calculate_distance,
    haversine_km,
    round_km,
)

__all__ = [
    "EARTH_RADIUS_KM",
    "Coordinates",
    "calculate_distance",
    "haversine_km",
    "round_km",
    "FrozenClock",
    "SystemClock",
]

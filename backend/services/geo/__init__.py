"""
Geographic adapters: address geocoding and travel distance estimation.
"""

from .distance import (
    SOURCE_HAVERSINE,
    SOURCE_NETWORK,
    DistanceEstimate,
    FallbackDistanceEstimator,
    HaversineDistanceEstimator,
    MapboxDistanceEstimator,
)
from .exceptions import (
    DistanceUnavailable,
    GeocodingFailed,
    GeocodingNotFound,
    GeocodingUnavailable,
)
from .geocoding import MapboxGeocoder

__all__ = [
    # Geocoding
    "MapboxGeocoder",
    # Distance
    "DistanceEstimate",
    "MapboxDistanceEstimator",
    "HaversineDistanceEstimator",
    "FallbackDistanceEstimator",
    "SOURCE_NETWORK",
    "SOURCE_HAVERSINE",
    # Exceptions
    "GeocodingFailed",
    "GeocodingNotFound",
    "GeocodingUnavailable",
    "DistanceUnavailable",
]

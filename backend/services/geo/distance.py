"""
Travel distance estimation between two coordinates.

The network estimate comes from the Mapbox directions-matrix API. When it is
unreachable, FallbackDistanceEstimator degrades to the great-circle
(haversine) distance for that single call, so one flaky request never
removes a driver from ranking.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings

from common.utils.geo import Coordinates, haversine_km
from .exceptions import DistanceUnavailable

logger = logging.getLogger(__name__)

SOURCE_NETWORK = "network"
SOURCE_HAVERSINE = "haversine"


@dataclass(frozen=True)
class DistanceEstimate:
    distance_km: float
    duration_min: Optional[float] = None
    source: str = SOURCE_NETWORK


class MapboxDistanceEstimator:
    """Driving distance from the Mapbox directions-matrix endpoint."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.access_token = access_token if access_token is not None else settings.MAPBOX_ACCESS_TOKEN
        self.base_url = (base_url or settings.MAPBOX_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.DISPATCH_PROVIDER_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def distance(self, origin: Coordinates, destination: Coordinates) -> DistanceEstimate:
        coordinates = f"{origin.as_lon_lat()};{destination.as_lon_lat()}"
        url = f"{self.base_url}/directions-matrix/v1/mapbox/driving/{coordinates}"
        params = {
            "access_token": self.access_token,
            "sources": 0,
            "destinations": 1,
            "annotations": "distance,duration",
        }

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise DistanceUnavailable(f"Distance matrix request failed: {exc}") from exc
        except ValueError as exc:
            raise DistanceUnavailable("Distance matrix returned malformed JSON") from exc

        if data.get("code") not in (None, "Ok"):
            raise DistanceUnavailable(f"Distance matrix error: {data.get('code')}")

        try:
            meters = data["distances"][0][0]
            seconds = (data.get("durations") or [[None]])[0][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise DistanceUnavailable("Distance matrix response has no cell") from exc

        # Mapbox returns null for unroutable pairs
        if meters is None:
            raise DistanceUnavailable("No route between the points")

        return DistanceEstimate(
            distance_km=float(meters) / 1000.0,
            duration_min=float(seconds) / 60.0 if seconds is not None else None,
            source=SOURCE_NETWORK,
        )


class HaversineDistanceEstimator:
    """Great-circle distance, with duration derived from an average speed."""

    def __init__(self, average_speed_kmh: Optional[float] = None):
        if average_speed_kmh is None:
            average_speed_kmh = settings.DISPATCH_FALLBACK_SPEED_KMH
        self.average_speed_kmh = average_speed_kmh

    def distance(self, origin: Coordinates, destination: Coordinates) -> DistanceEstimate:
        km = haversine_km(origin, destination)
        duration = (km / self.average_speed_kmh) * 60.0 if self.average_speed_kmh else None
        return DistanceEstimate(distance_km=km, duration_min=duration, source=SOURCE_HAVERSINE)


class FallbackDistanceEstimator:
    """Try the primary estimator; fall back to haversine on DistanceUnavailable."""

    def __init__(self, primary, fallback: Optional[HaversineDistanceEstimator] = None):
        self.primary = primary
        self.fallback = fallback or HaversineDistanceEstimator()

    def distance(self, origin: Coordinates, destination: Coordinates) -> DistanceEstimate:
        try:
            return self.primary.distance(origin, destination)
        except DistanceUnavailable as exc:
            logger.warning("Network distance unavailable, using haversine: %s", exc)
            return self.fallback.distance(origin, destination)

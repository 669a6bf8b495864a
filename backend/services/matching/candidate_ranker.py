"""
Rank available drivers for one delivery point.

Candidates are ordered closest first. When two drivers are within
DISPATCH_RATING_TIE_KM of each other the better-rated driver goes first.
"""

import logging
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable, List, Optional

from django.conf import settings

from common.utils.geo import Coordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverCandidate:
    """A driver inside the search radius, with the distance used to rank it."""
    driver_id: int
    name: str
    phone: str
    coordinates: Coordinates
    notification_token: str
    rating: float
    completed_deliveries: int
    distance_km: float
    distance_source: str
    duration_min: Optional[float] = None


class CandidateRanker:
    """
    Filters a driver pool to a radius and orders it for fan-out.

    The estimator is injected so tests and degraded deployments can swap
    the network provider for haversine.
    """

    def __init__(self, estimator, rating_tie_km: Optional[float] = None):
        self.estimator = estimator
        if rating_tie_km is None:
            rating_tie_km = settings.DISPATCH_RATING_TIE_KM
        self.rating_tie_km = rating_tie_km

    def rank(
        self,
        drivers: Iterable,
        delivery_point: Coordinates,
        max_radius_km: float = 15.0,
    ) -> List[DriverCandidate]:
        candidates: List[DriverCandidate] = []
        skipped_no_location = 0
        skipped_radius = 0

        for driver in drivers:
            if driver.coordinates is None:
                skipped_no_location += 1
                continue

            estimate = self.estimator.distance(driver.coordinates, delivery_point)
            if estimate.distance_km > max_radius_km:
                skipped_radius += 1
                continue

            candidates.append(
                DriverCandidate(
                    driver_id=driver.driver_id,
                    name=driver.name,
                    phone=driver.phone,
                    coordinates=driver.coordinates,
                    notification_token=driver.notification_token,
                    rating=float(driver.rating or 0),
                    completed_deliveries=driver.completed_deliveries,
                    distance_km=max(estimate.distance_km, 0.0),
                    distance_source=estimate.source,
                    duration_min=estimate.duration_min,
                )
            )

        # Canonical order first so the tie-break comparator sees the same
        # sequence regardless of how the pool was iterated
        candidates.sort(key=lambda c: (c.distance_km, c.driver_id))
        candidates.sort(key=cmp_to_key(self._compare))

        logger.debug(
            "Ranked %d candidates within %.1f km (%d without location, %d out of radius)",
            len(candidates), max_radius_km, skipped_no_location, skipped_radius,
        )
        return candidates

    def _compare(self, a: DriverCandidate, b: DriverCandidate) -> int:
        if abs(a.distance_km - b.distance_km) < self.rating_tie_km and a.rating != b.rating:
            return -1 if a.rating > b.rating else 1
        if a.distance_km != b.distance_km:
            return -1 if a.distance_km < b.distance_km else 1
        return (a.driver_id > b.driver_id) - (a.driver_id < b.driver_id)

"""
Driver-side data access: availability updates and the read-only DriverPool.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.utils import timezone

from drivers.models import DriverProfile
from common.utils.geo import Coordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverRecord:
    """Snapshot of one active+available driver as seen by the dispatcher."""
    driver_id: int
    name: str
    phone: str
    coordinates: Optional[Coordinates]
    notification_token: str
    rating: float
    completed_deliveries: int


class DriverPool:
    """
    Read-only view over currently active and available drivers.

    Drivers without a stored position are filtered in the query; the
    ranker still guards against missing coordinates for other pools.
    """

    def available_drivers(self) -> List[DriverRecord]:
        profiles = (
            DriverProfile.objects.select_related("user")
            .filter(
                status="available",
                is_active=True,
                user__is_active=True,
                current_latitude__isnull=False,
                current_longitude__isnull=False,
            )
            .order_by("user_id")
        )
        return [to_driver_record(profile) for profile in profiles]

    def tokens_for(self, driver_ids) -> Dict[int, str]:
        """Notification tokens for specific drivers, whatever their current status."""
        rows = DriverProfile.objects.filter(user_id__in=list(driver_ids)).values_list(
            "user_id", "notification_token"
        )
        return {user_id: token or "" for user_id, token in rows}


def to_driver_record(profile: DriverProfile) -> DriverRecord:
    user = profile.user
    return DriverRecord(
        driver_id=profile.user_id,
        name=user.display_name,
        phone=user.phone_number or "",
        coordinates=Coordinates.from_values(profile.current_latitude, profile.current_longitude),
        notification_token=profile.notification_token or "",
        rating=float(profile.rating or 0),
        completed_deliveries=profile.completed_deliveries or 0,
    )


# DRIVER STATUS UPDATE
def update_driver_status(profile: DriverProfile, new_status: str):
    """Update driver availability status."""
    profile.status = new_status
    profile.save(update_fields=["status"])
    logger.info("Driver %s is now %s", profile.user_id, new_status)
    return profile


def update_driver_location(profile: DriverProfile, lat, lon):
    """
    Update driver location. Used by:
    - HTTP location endpoint
    - WebSocket driver tracking events
    """
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return profile


def update_notification_token(profile: DriverProfile, token: str):
    """Register the device token the notifier should use for this driver."""
    profile.notification_token = token
    profile.save(update_fields=["notification_token"])
    return profile

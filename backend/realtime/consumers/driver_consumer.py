"""Driver WebSocket consumer: delivery offers in, claims and rejections out."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from drivers import services as driver_services
from drivers.models import DriverProfile
from services.dispatch_management import DispatchError, get_coordinator
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Delivery offers pushed by the dispatcher (driver_<id> group)
        - claim_assignment / reject_assignment from the driver app
        - Location and availability updates
    """

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for drivers only")
            await self.close()
            return

        # Join driver-specific group for targeted notifications
        self.driver_group = f"driver_{self.user_id}"
        await self._join_group(self.driver_group)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "claim_assignment":
            await self._handle_claim(data)
        elif msg_type == "reject_assignment":
            await self._handle_reject(data)
        elif msg_type == "driver_location_update":
            await self._handle_location_update(data)
        elif msg_type == "driver_status_update":
            await self._handle_status_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_claim(self, data: Dict[str, Any]):
        assignment_id = data.get("assignment_id")
        if not assignment_id:
            await self.send_error("claim_assignment requires assignment_id")
            return

        try:
            assignment = await self._claim(assignment_id)
        except DispatchError as exc:
            await self._send_dispatch_error("claim_failed", assignment_id, exc)
            return

        await self.send_success(
            "assignment_claimed",
            assignment_id=str(assignment.id),
            order_id=assignment.order_id,
            status=assignment.status,
        )

    async def _handle_reject(self, data: Dict[str, Any]):
        assignment_id = data.get("assignment_id")
        if not assignment_id:
            await self.send_error("reject_assignment requires assignment_id")
            return

        try:
            assignment = await self._reject(assignment_id)
        except DispatchError as exc:
            await self._send_dispatch_error("reject_failed", assignment_id, exc)
            return

        await self.send_success(
            "assignment_rejected",
            assignment_id=str(assignment.id),
            status=assignment.status,
        )

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        if await self._update_driver_location_db(float(lat), float(lon)):
            await self.send_success("location_updated", latitude=float(lat), longitude=float(lon))
        else:
            await self.send_error("Driver profile not found")

    async def _handle_status_update(self, data: Dict[str, Any]):
        """Handle driver status change (available/busy/offline)."""
        status = data.get("status")

        if status not in ["available", "busy", "offline"]:
            await self.send_error("Invalid status. Must be: available, busy, or offline")
            return

        if await self._update_driver_status_db(status):
            await self.send_success("status_updated", status=status)
        else:
            await self.send_error("Driver profile not found")

    async def _send_dispatch_error(self, event_type: str, assignment_id, exc: DispatchError):
        await self.send_json({
            "type": event_type,
            "assignment_id": str(assignment_id),
            "error": exc.code,
            "message": str(exc),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _claim(self, assignment_id):
        return get_coordinator().claim(assignment_id, self.user_id)

    @database_sync_to_async
    def _reject(self, assignment_id):
        return get_coordinator().reject(assignment_id, self.user_id)

    @database_sync_to_async
    def _update_driver_location_db(self, lat: float, lon: float) -> bool:
        """Update driver's location in database."""
        try:
            profile = self.user.driver_profile
        except DriverProfile.DoesNotExist:
            logger.warning("Location update from driver %s without a profile", self.user_id)
            return False
        driver_services.update_driver_location(profile, lat, lon)
        return True

    @database_sync_to_async
    def _update_driver_status_db(self, status: str) -> bool:
        """Update driver's status in database."""
        try:
            profile = self.user.driver_profile
        except DriverProfile.DoesNotExist:
            logger.warning("Status update from driver %s without a profile", self.user_id)
            return False
        driver_services.update_driver_status(profile, status)
        return True

"""
Notification helpers for sending WebSocket messages to connected drivers.

ChannelLayerNotifier is the default dispatch notifier backend
(DISPATCH_NOTIFIER_BACKEND). It pushes to the driver's personal group
driver_<id> on the channel layer, Redis in production.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from services.matching.fanout import NotificationError, NotificationMessage

logger = logging.getLogger(__name__)

# Notification data "type" -> consumer handler name
EVENT_HANDLERS = {
    "delivery_assignment": "dispatch_offer",
    "assignment_cancelled": "offer_cancelled",
    "assignment_closed": "offer_closed",
}


def driver_group(driver_id: int) -> str:
    return f"driver_{driver_id}"


def notify_driver_event(
    event_type: str,
    driver_id: int | None,
    payload: Dict[str, Any] | None = None,
) -> bool:
    """
    Send an event to a specific driver using their personal group: driver_<driver_id>

    Args:
        event_type: Handler name in consumer (dispatch_offer, offer_cancelled, offer_closed)
        driver_id: Target driver's user ID
        payload: Additional payload data

    Returns:
        True if sent, False when there is no driver or no channel layer
    """
    if not driver_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    message = {"type": event_type, "driver_id": driver_id, **(payload or {})}
    logger.debug("WS -> driver_%s: %s", driver_id, message)
    async_to_sync(channel_layer.group_send)(driver_group(driver_id), message)
    return True


class ChannelLayerNotifier:
    """
    Dispatch notifier backend over Django Channels.

    A send succeeds once group_send is accepted by the layer. The layer
    cannot tell whether any socket is subscribed to driver_<id>, so a
    driver with no open connection is still counted as notified and
    becomes eligible to claim. Such drivers pick the offer up from
    GET /api/dispatch/driver/offers/ when they reconnect; deployments
    that need delivery to offline devices use FcmNotifier instead.
    Only a missing layer or a layer error raises NotificationError.
    """

    def send(self, message: NotificationMessage) -> None:
        event_type = EVENT_HANDLERS.get(message.data.get("type"), "dispatch_offer")
        try:
            sent = notify_driver_event(
                event_type,
                message.driver_id,
                {"title": message.title, "body": message.body, "data": message.data},
            )
        except Exception as exc:
            # Redis down, channel full, ...
            raise NotificationError(f"Channel layer send failed: {exc}") from exc

        if not sent:
            raise NotificationError("No channel layer configured")

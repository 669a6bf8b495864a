"""Base WebSocket consumer with shared connection handling and dispatch event handlers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.
    
    Subclasses should override:
        - on_connect(): join role-specific groups after accept
        - handle_message(msg_type, data): handle incoming messages
    """

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        # Basic attributes available to all consumers
        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)
        
        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()
        
        # Personal group (useful for targeted server->user messages)
        self.user_group = f"user_{self.user_id}"
        await self._join_group(self.user_group)

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            for group in list(self.joined_groups):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return
        
        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Common Event Handlers ----------------------
    # These handle group_send events from server-side code

    async def dispatch_offer(self, event):
        """Sent by the dispatcher to offer a delivery to this driver."""
        await self.send_json({
            "type": "delivery_offer",
            "title": event.get("title"),
            "body": event.get("body"),
            "offer": event.get("data", {}),
        })

    async def offer_cancelled(self, event):
        """Sent when the order behind an open offer was cancelled."""
        data = event.get("data", {})
        await self.send_json({
            "type": "offer_cancelled",
            "assignment_id": data.get("assignment_id"),
            "order_id": data.get("order_id"),
            "message": event.get("body", ""),
        })

    async def offer_closed(self, event):
        """Sent when another driver claimed the offer."""
        data = event.get("data", {})
        await self.send_json({
            "type": "offer_closed",
            "assignment_id": data.get("assignment_id"),
            "order_id": data.get("order_id"),
            "message": event.get("body", ""),
        })

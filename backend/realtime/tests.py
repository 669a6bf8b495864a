from unittest.mock import AsyncMock, MagicMock, patch

from asgiref.sync import sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase

from accounts.models import User
from services.dispatch_management import AlreadyClaimed
from services.matching import NotificationError, NotificationMessage
from .consumers import DriverConsumer
from .notifications import ChannelLayerNotifier, driver_group, notify_driver_event


def offer_message(driver_id=7, event="delivery_assignment"):
	return NotificationMessage(
		driver_id=driver_id,
		token="",
		title="New delivery available",
		body="Order #A-1001",
		data={"type": event, "assignment_id": "abc", "order_id": "12"},
	)


class ChannelLayerNotifierTests(SimpleTestCase):
	def test_offer_goes_to_driver_group(self):
		layer = MagicMock()
		layer.group_send = AsyncMock()

		with patch("realtime.notifications.get_channel_layer", return_value=layer):
			ChannelLayerNotifier().send(offer_message())

		group, event = layer.group_send.call_args.args
		self.assertEqual(group, "driver_7")
		self.assertEqual(event["type"], "dispatch_offer")
		self.assertEqual(event["title"], "New delivery available")
		self.assertEqual(event["data"]["assignment_id"], "abc")

	def test_closure_events_map_to_handlers(self):
		layer = MagicMock()
		layer.group_send = AsyncMock()

		with patch("realtime.notifications.get_channel_layer", return_value=layer):
			ChannelLayerNotifier().send(offer_message(event="assignment_cancelled"))
			ChannelLayerNotifier().send(offer_message(event="assignment_closed"))

		handlers = [c.args[1]["type"] for c in layer.group_send.call_args_list]
		self.assertEqual(handlers, ["offer_cancelled", "offer_closed"])

	def test_layer_failure_is_a_notification_error(self):
		layer = MagicMock()
		layer.group_send = AsyncMock(side_effect=ConnectionError("redis down"))

		with patch("realtime.notifications.get_channel_layer", return_value=layer):
			with self.assertRaises(NotificationError):
				ChannelLayerNotifier().send(offer_message())

	def test_missing_layer_is_a_notification_error(self):
		with patch("realtime.notifications.get_channel_layer", return_value=None):
			with self.assertRaises(NotificationError):
				ChannelLayerNotifier().send(offer_message())

	def test_notify_without_driver_is_skipped(self):
		self.assertFalse(notify_driver_event("dispatch_offer", None, {}))

	async def test_in_memory_layer_delivers_to_group_member(self):
		layer = get_channel_layer()
		channel = await layer.new_channel()
		await layer.group_add(driver_group(31), channel)

		await sync_to_async(ChannelLayerNotifier().send)(offer_message(driver_id=31))

		event = await layer.receive(channel)
		self.assertEqual(event["type"], "dispatch_offer")
		self.assertEqual(event["driver_id"], 31)
		await layer.group_discard(driver_group(31), channel)

	async def test_offline_driver_counts_as_sent(self):
		# Nobody is subscribed to driver_32; the offer waits in the offers listing
		await sync_to_async(ChannelLayerNotifier().send)(offer_message(driver_id=32))


class DriverConsumerTests(SimpleTestCase):
	async def connect(self, user):
		communicator = WebsocketCommunicator(DriverConsumer.as_asgi(), "/ws/driver/")
		communicator.scope["user"] = user
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		return communicator

	async def test_driver_joins_personal_group(self):
		communicator = await self.connect(User(id=41, username="d41", role="driver"))

		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting["type"], "connection_established")

		await get_channel_layer().group_send(driver_group(41), {
			"type": "dispatch_offer",
			"title": "New delivery available",
			"body": "Order #A-1001",
			"data": {"assignment_id": "abc"},
		})
		offer = await communicator.receive_json_from()
		self.assertEqual(offer["type"], "delivery_offer")
		self.assertEqual(offer["offer"]["assignment_id"], "abc")

		await communicator.disconnect()

	async def test_non_driver_is_turned_away(self):
		communicator = await self.connect(User(id=42, username="m42", role="merchant"))

		message = await communicator.receive_json_from()
		self.assertEqual(message["type"], "error")
		await communicator.disconnect()

	async def test_claim_requires_assignment_id(self):
		communicator = await self.connect(User(id=43, username="d43", role="driver"))
		await communicator.receive_json_from()

		await communicator.send_json_to({"type": "claim_assignment"})
		message = await communicator.receive_json_from()

		self.assertEqual(message["type"], "error")
		await communicator.disconnect()

	async def test_lost_claim_is_reported_with_code(self):
		coordinator = MagicMock()
		coordinator.claim.side_effect = AlreadyClaimed("Assignment abc was already claimed")

		with patch("realtime.consumers.driver_consumer.get_coordinator", return_value=coordinator):
			communicator = await self.connect(User(id=44, username="d44", role="driver"))
			await communicator.receive_json_from()

			await communicator.send_json_to({"type": "claim_assignment", "assignment_id": "abc"})
			message = await communicator.receive_json_from()

		self.assertEqual(message["type"], "claim_failed")
		self.assertEqual(message["error"], "already_claimed")
		coordinator.claim.assert_called_once_with("abc", 44)
		await communicator.disconnect()

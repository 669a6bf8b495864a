from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import requests
from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from services.matching import (
    FcmNotifier,
    NotificationError,
    NotificationMessage,
    NotifierFanout,
    build_offer_message,
)

from .fakes import RecordingNotifier


def candidate(driver_id, distance_km=2.0):
    return SimpleNamespace(driver_id=driver_id, distance_km=distance_km,
                           notification_token=f"token-{driver_id}")


def message(driver_id):
    return NotificationMessage(driver_id=driver_id, token=f"token-{driver_id}",
                               title="New delivery available", body="Order #1",
                               data={"type": "delivery_assignment"})


class NotifierFanoutTests(SimpleTestCase):
	def deliveries(self, *driver_ids):
		return [(candidate(d, distance_km=float(d)), message(d)) for d in driver_ids]

	def test_partial_failure_keeps_successful_recipients_in_rank_order(self):
		notifier = RecordingNotifier(failing={2})
		fanout = NotifierFanout(notifier, timeout=2, max_workers=5)

		result = fanout.fanout(self.deliveries(3, 2, 1))

		self.assertEqual(result.notified_driver_ids, [3, 1])
		self.assertEqual(result.sent, 2)
		self.assertEqual(result.failed, 1)
		failed = [r for r in result.results if not r.success][0]
		self.assertEqual(failed.driver_id, 2)
		self.assertEqual(failed.rank, 2)
		self.assertIn("unreachable", failed.error)
		self.assertIsNone(failed.sent_at)

	def test_slow_send_is_recorded_as_timeout(self):
		notifier = RecordingNotifier(slow={2}, delay=1.0)
		fanout = NotifierFanout(notifier, timeout=0.2, max_workers=5)

		result = fanout.fanout(self.deliveries(1, 2))

		self.assertEqual(result.notified_driver_ids, [1])
		timed_out = [r for r in result.results if r.driver_id == 2][0]
		self.assertEqual(timed_out.error, "timeout")

	def test_all_failed(self):
		fanout = NotifierFanout(RecordingNotifier(failing={1, 2}), timeout=2, max_workers=5)

		result = fanout.fanout(self.deliveries(1, 2))

		self.assertEqual(result.sent, 0)
		self.assertEqual(result.notified_driver_ids, [])

	def test_empty_fanout(self):
		result = NotifierFanout(RecordingNotifier(), timeout=1, max_workers=5).fanout([])
		self.assertEqual(result.results, ())

	def test_sends_run_concurrently(self):
		notifier = RecordingNotifier(slow={1, 2, 3, 4, 5}, delay=0.3)
		fanout = NotifierFanout(notifier, timeout=2, max_workers=5)

		started = timezone.now()
		result = fanout.fanout(self.deliveries(1, 2, 3, 4, 5))
		elapsed = (timezone.now() - started).total_seconds()

		self.assertEqual(result.sent, 5)
		self.assertLess(elapsed, 1.2)


class OfferMessageTests(SimpleTestCase):
	def test_payload_is_self_contained(self):
		expires = timezone.now() + timedelta(minutes=5)
		order = SimpleNamespace(id=7, order_number="A-1007")
		assignment = SimpleNamespace(id="5b1c", store_id=3, total_amount=Decimal("42.50"),
		                             delivery_fee=Decimal("5.00"), expires_at=expires)

		msg = build_offer_message(order, assignment, candidate(4, distance_km=2.345), "Epicerie Centrale")

		self.assertEqual(msg.driver_id, 4)
		self.assertEqual(msg.token, "token-4")
		self.assertEqual(msg.body, "Order #A-1007 • Epicerie Centrale • 2.35 km • 42.50")
		self.assertEqual(msg.data["type"], "delivery_assignment")
		self.assertEqual(msg.data["action"], "accept_delivery")
		self.assertEqual(msg.data["assignment_id"], "5b1c")
		self.assertEqual(msg.data["order_id"], "7")
		self.assertEqual(msg.data["distance_km"], "2.35")
		self.assertEqual(msg.data["amount"], "42.50")
		self.assertEqual(msg.data["delivery_fee"], "5.00")
		self.assertEqual(msg.data["expires_at"], expires.isoformat())


@override_settings(FCM_SERVER_KEY="server-key", FCM_SEND_URL="https://fcm.test/send")
class FcmNotifierTests(SimpleTestCase):
	def test_missing_token_fails_without_request(self):
		with patch("services.matching.fanout.requests.post") as post:
			with self.assertRaises(NotificationError):
				FcmNotifier().send(NotificationMessage(driver_id=1, token="", title="t", body="b"))
		post.assert_not_called()

	def test_posts_legacy_payload(self):
		with patch("services.matching.fanout.requests.post") as post:
			post.return_value.status_code = 200
			post.return_value.json.return_value = {"success": 1, "failure": 0}

			FcmNotifier(time_to_live=300).send(message(1))

		_, kwargs = post.call_args
		self.assertEqual(kwargs["headers"]["Authorization"], "key=server-key")
		self.assertEqual(kwargs["json"]["to"], "token-1")
		self.assertEqual(kwargs["json"]["priority"], "high")
		self.assertEqual(kwargs["json"]["time_to_live"], 300)

	def test_rejected_token_raises(self):
		with patch("services.matching.fanout.requests.post") as post:
			post.return_value.status_code = 200
			post.return_value.json.return_value = {"failure": 1, "results": [{"error": "NotRegistered"}]}

			with self.assertRaisesMessage(NotificationError, "NotRegistered"):
				FcmNotifier().send(message(1))

	def test_network_error_raises(self):
		with patch("services.matching.fanout.requests.post", side_effect=requests.ConnectionError("down")):
			with self.assertRaises(NotificationError):
				FcmNotifier().send(message(1))

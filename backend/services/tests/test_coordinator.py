import threading
import uuid
from datetime import timedelta
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from common.utils.clock import FrozenClock
from dispatch.models import Assignment, NotificationAttempt
from drivers.services import DriverPool
from orders.models import Order
from services.dispatch_management import (
    AlreadyClaimed,
    AssignmentCancelled,
    AssignmentExpired,
    AssignmentNotFound,
    AssignmentStore,
    DispatchConfig,
    DispatchCoordinator,
    DjangoAssignmentStore,
    DriverNotEligible,
    GeocodingFailed,
    InvalidState,
    NoDriversAvailable,
    NotificationDeliveryFailed,
)
from services.matching import FanoutResult, RecipientResult

from .factories import create_driver, create_order, create_store, driver_point
from .fakes import (
    FakeDriverPool,
    FakeGeocoder,
    InMemoryAssignmentStore,
    RecordingNotifier,
    TableEstimator,
    make_driver,
)

CONFIG = DispatchConfig(
    claim_window_seconds=300,
    max_radius_km=15,
    max_candidates=5,
    max_attempts=2,
    radius_expansion=1.5,
    rating_tie_km=1.0,
    notify_timeout_seconds=2,
)


class RecordingScheduler:
	def __init__(self, fail=False):
		self.calls = []
		self.fail = fail

	def __call__(self, order_id, attempt, radius_km):
		if self.fail:
			raise ConnectionError("broker unreachable")
		self.calls.append((order_id, attempt, radius_km))


@patch("services.dispatch_management.coordinator.dispatch_exhausted")
@patch("services.dispatch_management.coordinator.assignment_claimed")
class ClaimResolutionTests(SimpleTestCase):
	"""Claim state machine against the in-memory conditional-update store."""

	def setUp(self):
		self.clock = FrozenClock(timezone.now().replace(microsecond=0))
		self.store = InMemoryAssignmentStore()
		self.notifier = RecordingNotifier()
		self.scheduler = RecordingScheduler()
		self.coordinator = DispatchCoordinator(
			store=self.store,
			geocoder=FakeGeocoder(),
			estimator=TableEstimator({}),
			notifier=self.notifier,
			driver_pool=FakeDriverPool([make_driver(i, 45.5, -73.5) for i in (1, 2, 3)]),
			clock=self.clock,
			config=CONFIG,
			redispatch_scheduler=self.scheduler,
		)
		self.assignment = self.store.seed_pending(self.clock, CONFIG.claim_window, notified=[1, 2, 3])

	def test_claim_success(self, claimed_signal, exhausted_signal):
		assignment = self.coordinator.claim(self.assignment.id, 2)

		self.assertEqual(assignment.status, "claimed")
		self.assertEqual(assignment.claimed_by_id, 2)
		self.assertEqual(assignment.resolved_at, self.clock.now())
		claimed_signal.send.assert_called_once()
		self.assertEqual(claimed_signal.send.call_args.kwargs["driver_id"], 2)
		self.assertEqual(sorted(self.notifier.sent_to("assignment_closed")), [1, 3])

	def test_scenario_b_concurrent_claims_have_exactly_one_winner(self, claimed_signal, exhausted_signal):
		for _ in range(20):
			assignment = self.store.seed_pending(self.clock, CONFIG.claim_window, notified=[1, 2], order_id=99)
			barrier = threading.Barrier(2)
			outcomes = {}

			def claim(driver_id):
				barrier.wait()
				try:
					self.coordinator.claim(assignment.id, driver_id)
					outcomes[driver_id] = "won"
				except AlreadyClaimed:
					outcomes[driver_id] = "already_claimed"

			threads = [threading.Thread(target=claim, args=(d,)) for d in (1, 2)]
			for thread in threads:
				thread.start()
			for thread in threads:
				thread.join(timeout=5)

			self.assertEqual(sorted(outcomes.values()), ["already_claimed", "won"])
			winner = [d for d, o in outcomes.items() if o == "won"][0]
			self.assertEqual(self.store.get(assignment.id).claimed_by_id, winner)

	def test_second_claim_is_already_claimed(self, claimed_signal, exhausted_signal):
		self.coordinator.claim(self.assignment.id, 1)

		with self.assertRaises(AlreadyClaimed):
			self.coordinator.claim(self.assignment.id, 2)
		self.assertEqual(self.store.get(self.assignment.id).claimed_by_id, 1)

	def test_scenario_c_sweep_then_late_claim(self, claimed_signal, exhausted_signal):
		created = self.clock.now()
		self.assertEqual(self.assignment.expires_at, created + timedelta(minutes=5))

		self.clock.advance(minutes=5, seconds=1)
		result = self.coordinator.sweep_expired()
		self.assertEqual(result.expired, 1)
		self.assertEqual(self.store.get(self.assignment.id).status, "expired")

		self.clock.advance(seconds=1)
		with self.assertRaises(AssignmentExpired):
			self.coordinator.claim(self.assignment.id, 1)

	def test_claim_after_window_is_expired_before_any_sweep(self, claimed_signal, exhausted_signal):
		self.clock.advance(minutes=5)

		with self.assertRaises(AssignmentExpired):
			self.coordinator.claim(self.assignment.id, 1)
		self.assertEqual(self.store.get(self.assignment.id).status, "pending")

	def test_late_claim_on_claimed_assignment_is_still_expired(self, claimed_signal, exhausted_signal):
		self.coordinator.claim(self.assignment.id, 1)
		self.clock.advance(minutes=6)

		with self.assertRaises(AssignmentExpired):
			self.coordinator.claim(self.assignment.id, 2)

	def test_driver_not_notified_cannot_claim(self, claimed_signal, exhausted_signal):
		with self.assertRaises(DriverNotEligible):
			self.coordinator.claim(self.assignment.id, 42)

	def test_unknown_assignment(self, claimed_signal, exhausted_signal):
		with self.assertRaises(AssignmentNotFound):
			self.coordinator.claim(uuid.uuid4(), 1)

	def test_claim_after_cancel_is_rejected(self, claimed_signal, exhausted_signal):
		cancelled = self.coordinator.cancel(self.assignment.order_id)

		self.assertEqual([a.id for a in cancelled], [self.assignment.id])
		self.assertEqual(sorted(self.notifier.sent_to("assignment_cancelled")), [1, 2, 3])
		with self.assertRaises(AssignmentCancelled):
			self.coordinator.claim(self.assignment.id, 1)

	def test_claim_on_notifying_assignment_is_invalid(self, claimed_signal, exhausted_signal):
		self.store.compare_and_set(self.assignment.id, "pending", "notifying")

		with self.assertRaises(InvalidState):
			self.coordinator.claim(self.assignment.id, 1)

	def test_lost_cas_is_mapped_from_fresh_state(self, claimed_signal, exhausted_signal):
		stale = self.store.get(self.assignment.id)
		self.coordinator.cancel(self.assignment.order_id)

		with patch.object(self.store, "get", side_effect=[stale, self.store.get(self.assignment.id)]):
			with self.assertRaises(AssignmentCancelled):
				self.coordinator.claim(self.assignment.id, 1)

	def test_reject_records_response(self, claimed_signal, exhausted_signal):
		assignment = self.coordinator.reject(self.assignment.id, 1)

		self.assertEqual(assignment.status, "pending")
		self.assertEqual(self.store.rejected_driver_ids(self.assignment.id), {1})

	def test_all_rejections_resolve_early_and_redispatch(self, claimed_signal, exhausted_signal):
		for driver_id in (1, 2, 3):
			assignment = self.coordinator.reject(self.assignment.id, driver_id)

		self.assertEqual(assignment.status, "expired")
		self.assertEqual(assignment.failure_reason, "All notified drivers rejected")
		self.assertEqual(self.scheduler.calls, [(1, 2, 22.5)])

	def test_sweep_redispatches_with_expanded_radius(self, claimed_signal, exhausted_signal):
		self.clock.advance(minutes=5)

		result = self.coordinator.sweep_expired()

		self.assertEqual((result.expired, result.redispatched, result.exhausted), (1, 1, 0))
		self.assertEqual(self.scheduler.calls, [(1, 2, 22.5)])
		exhausted_signal.send.assert_not_called()

	def test_sweep_exhausts_last_attempt(self, claimed_signal, exhausted_signal):
		last = self.store.seed_pending(
			self.clock, CONFIG.claim_window, notified=[1], order_id=5, attempt=2, radius_km=22.5
		)
		self.store.compare_and_set(self.assignment.id, "pending", "claimed")
		self.clock.advance(minutes=6)

		result = self.coordinator.sweep_expired()

		self.assertEqual((result.expired, result.exhausted), (0, 1))
		self.assertEqual(self.store.get(last.id).status, "exhausted")
		self.assertEqual(self.scheduler.calls, [])
		kwargs = exhausted_signal.send.call_args.kwargs
		self.assertEqual(kwargs["order_id"], 5)
		self.assertEqual(kwargs["reason"], "attempts_exhausted")

	def test_double_sweep_is_harmless(self, claimed_signal, exhausted_signal):
		self.clock.advance(minutes=5)

		first = self.coordinator.sweep_expired()
		second = self.coordinator.sweep_expired()

		self.assertEqual(first.expired, 1)
		self.assertEqual(second.expired, 0)
		self.assertEqual(len(self.scheduler.calls), 1)

	def test_sweep_loses_race_to_claim(self, claimed_signal, exhausted_signal):
		stale = self.store.get(self.assignment.id)
		self.coordinator.claim(self.assignment.id, 1)
		self.clock.advance(minutes=5)

		with patch.object(self.store, "scan_pending_before", return_value=[stale]):
			result = self.coordinator.sweep_expired()

		self.assertEqual(result.expired, 0)
		self.assertEqual(self.store.get(self.assignment.id).status, "claimed")
		self.assertEqual(self.scheduler.calls, [])

	def test_stale_notifying_record_is_failed(self, claimed_signal, exhausted_signal):
		self.store.compare_and_set(self.assignment.id, "pending", "notifying")
		self.clock.advance(minutes=5)

		result = self.coordinator.sweep_expired()

		self.assertEqual(result.failed, 1)
		self.assertEqual(self.store.get(self.assignment.id).status, "failed")

	def test_unschedulable_redispatch_escalates(self, claimed_signal, exhausted_signal):
		self.coordinator.redispatch_scheduler = RecordingScheduler(fail=True)
		self.clock.advance(minutes=5)

		result = self.coordinator.sweep_expired()

		self.assertEqual((result.expired, result.redispatched), (1, 0))
		self.assertEqual(exhausted_signal.send.call_args.kwargs["reason"], "redispatch_unavailable")

	def test_offers_for_driver(self, claimed_signal, exhausted_signal):
		self.coordinator.reject(self.assignment.id, 3)

		self.assertEqual([a.id for a in self.coordinator.offers_for_driver(1)], [self.assignment.id])
		self.assertEqual(self.coordinator.offers_for_driver(3), [])
		self.clock.advance(minutes=5)
		self.assertEqual(self.coordinator.offers_for_driver(1), [])

	def test_claim_on_cancelled_order_withdraws_assignment(self, claimed_signal, exhausted_signal):
		self.store.order_statuses[self.assignment.order_id] = "cancelled"

		with self.assertRaises(AssignmentCancelled):
			self.coordinator.claim(self.assignment.id, 2)

		assignment = self.store.get(self.assignment.id)
		self.assertEqual(assignment.status, "cancelled")
		self.assertIsNone(assignment.claimed_by_id)
		self.assertEqual(sorted(self.notifier.sent_to("assignment_cancelled")), [1, 2, 3])
		claimed_signal.send.assert_not_called()

	def test_reject_on_cancelled_order_withdraws_assignment(self, claimed_signal, exhausted_signal):
		self.store.order_statuses[self.assignment.order_id] = "cancelled"

		with self.assertRaises(AssignmentCancelled):
			self.coordinator.reject(self.assignment.id, 1)

		self.assertEqual(self.store.get(self.assignment.id).status, "cancelled")
		self.assertEqual(self.store.rejected_driver_ids(self.assignment.id), set())
		self.assertEqual(self.scheduler.calls, [])

	def test_cancelled_order_is_not_offered(self, claimed_signal, exhausted_signal):
		self.store.order_statuses[self.assignment.order_id] = "cancelled"

		self.assertEqual(self.coordinator.offers_for_driver(1), [])

	def test_stale_snapshot_cannot_claim_past_expiry(self, claimed_signal, exhausted_signal):
		stale = self.store.get(self.assignment.id)
		stale.expires_at = self.clock.now() + timedelta(hours=1)
		self.clock.advance(minutes=5)

		with patch.object(self.store, "get", side_effect=[stale, self.store.get(self.assignment.id)]):
			with self.assertRaises(AssignmentExpired):
				self.coordinator.claim(self.assignment.id, 1)

		self.assertEqual(self.store.get(self.assignment.id).status, "pending")
		claimed_signal.send.assert_not_called()


class AssignmentStoreInterfaceTests(SimpleTestCase):

	def test_incomplete_store_cannot_be_built(self):
		class ReadOnlyStore(AssignmentStore):
			def get(self, assignment_id):
				return None

		with self.assertRaises(TypeError):
			ReadOnlyStore()

	def test_in_memory_store_implements_interface(self):
		self.assertIsInstance(InMemoryAssignmentStore(), AssignmentStore)
		self.assertIsInstance(DjangoAssignmentStore(), AssignmentStore)


class DispatchFlowTests(TestCase):
	"""dispatch() end to end against the database-backed store and DriverPool."""

	def setUp(self):
		self.clock = FrozenClock(timezone.now().replace(microsecond=0))
		self.store_row = create_store()
		self.order = create_order(self.store_row)

		self.driver_2km = create_driver("near", "45.520000", "-73.560000", token="fcm-near")
		self.driver_8km = create_driver("mid", "45.560000", "-73.560000", token="fcm-mid")
		self.driver_20km = create_driver("far", "45.680000", "-73.560000", token="fcm-far")
		self.estimator = TableEstimator({
			driver_point("45.52", "-73.56"): 2.0,
			driver_point("45.56", "-73.56"): 8.0,
			driver_point("45.68", "-73.56"): 20.0,
		})
		self.geocoder = FakeGeocoder()
		self.notifier = RecordingNotifier()
		self.scheduler = RecordingScheduler()

	def coordinator(self, **overrides):
		kwargs = dict(
			store=DjangoAssignmentStore(),
			geocoder=self.geocoder,
			estimator=self.estimator,
			notifier=self.notifier,
			driver_pool=DriverPool(),
			clock=self.clock,
			config=CONFIG,
			redispatch_scheduler=self.scheduler,
		)
		kwargs.update(overrides)
		return DispatchCoordinator(**kwargs)

	def test_scenario_a_ranks_within_radius_and_notifies(self):
		outcome = self.coordinator().dispatch(self.order.id)

		assignment = outcome.assignment
		expected = [self.driver_2km.id, self.driver_8km.id]
		self.assertEqual([c.driver_id for c in outcome.candidates], expected)
		self.assertEqual(assignment.status, "pending")
		self.assertEqual(assignment.candidate_driver_ids, expected)
		self.assertEqual(assignment.notified_driver_ids, expected)
		self.assertEqual(assignment.expires_at, self.clock.now() + timedelta(minutes=5))
		self.assertEqual(assignment.total_amount, self.order.total_amount)
		self.assertEqual(assignment.radius_km, 15)
		self.assertEqual(outcome.available_drivers, 2)
		self.assertEqual(outcome.notifications_sent, 2)
		self.assertEqual(sorted(self.notifier.sent_to("delivery_assignment")), sorted(expected))

		attempts = list(NotificationAttempt.objects.filter(assignment=assignment))
		self.assertEqual([(a.driver_id, a.rank, a.success) for a in attempts],
		                 [(self.driver_2km.id, 1, True), (self.driver_8km.id, 2, True)])

	def test_failed_send_is_logged_but_not_eligible(self):
		self.notifier.failing = {self.driver_2km.id}

		outcome = self.coordinator().dispatch(self.order.id)

		self.assertEqual(outcome.assignment.candidate_driver_ids, [self.driver_2km.id, self.driver_8km.id])
		self.assertEqual(outcome.assignment.notified_driver_ids, [self.driver_8km.id])
		self.assertEqual(outcome.notifications_failed, 1)
		failed = NotificationAttempt.objects.get(assignment=outcome.assignment, driver=self.driver_2km)
		self.assertFalse(failed.success)
		self.assertIn("unreachable", failed.error)

		with self.assertRaises(DriverNotEligible):
			self.coordinator().claim(outcome.assignment.id, self.driver_2km.id)

	def test_zero_notified_is_never_pending(self):
		self.notifier.failing = {self.driver_2km.id, self.driver_8km.id}

		with self.assertRaises(NotificationDeliveryFailed):
			self.coordinator().dispatch(self.order.id)

		assignment = Assignment.objects.get(order=self.order)
		self.assertEqual(assignment.status, "failed")
		self.assertEqual(assignment.notified_driver_ids, [])
		self.assertIsNotNone(assignment.resolved_at)

	def test_no_drivers_in_radius_persists_nothing(self):
		with self.assertRaises(NoDriversAvailable):
			self.coordinator().dispatch(self.order.id, radius_km=1)
		self.assertFalse(Assignment.objects.exists())

	def test_unconfirmed_order_is_invalid(self):
		pending = create_order(self.store_row, number="A-2000", status="pending")

		with self.assertRaises(InvalidState):
			self.coordinator().dispatch(pending.id)

	def test_order_with_live_assignment_is_not_dispatched_twice(self):
		self.coordinator().dispatch(self.order.id)

		with self.assertRaises(InvalidState):
			self.coordinator().dispatch(self.order.id)
		self.assertEqual(Assignment.objects.filter(order=self.order).count(), 1)

	def test_delivery_geocoding_failure_is_fatal(self):
		self.geocoder.failures = {"Saint-Laurent"}

		with self.assertRaises(GeocodingFailed):
			self.coordinator().dispatch(self.order.id)
		self.assertFalse(Assignment.objects.exists())

	def test_store_without_coordinates_is_geocoded_and_tolerated(self):
		self.store_row.latitude = None
		self.store_row.longitude = None
		self.store_row.save()
		self.geocoder.failures = {"Rue Peel"}

		outcome = self.coordinator().dispatch(self.order.id)

		self.assertEqual(outcome.assignment.status, "pending")
		addresses = [address for address, _ in self.geocoder.calls]
		self.assertIn("1500 Rue Peel, Montreal", addresses)
		self.assertIn("4200 Boulevard Saint-Laurent, Montreal, H2W 2R2", addresses)

	def test_top_n_cap(self):
		coordinator = self.coordinator(config=DispatchConfig(max_candidates=1, notify_timeout_seconds=2))

		outcome = coordinator.dispatch(self.order.id)

		self.assertEqual(outcome.assignment.candidate_driver_ids, [self.driver_2km.id])
		self.assertEqual(outcome.available_drivers, 2)

	def test_cancellation_during_fanout_wins(self):
		coordinator = self.coordinator()
		real_fanout = coordinator.fanout.fanout

		def cancel_then_send(deliveries):
			coordinator.cancel(self.order.id)
			return real_fanout(deliveries)

		with patch.object(coordinator.fanout, "fanout", side_effect=cancel_then_send):
			outcome = coordinator.dispatch(self.order.id)

		self.assertEqual(outcome.assignment.status, "cancelled")
		self.assertEqual(outcome.assignment.notified_driver_ids, [])

	def test_claim_marks_order_assigned(self):
		coordinator = self.coordinator()
		assignment = coordinator.dispatch(self.order.id).assignment

		coordinator.claim(assignment.id, self.driver_8km.id)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, "assigned")
		self.assertEqual(self.order.assigned_driver_id, self.driver_8km.id)
		attempt = NotificationAttempt.objects.get(assignment=assignment, driver=self.driver_8km)
		self.assertEqual(attempt.response, "claimed")
		self.assertEqual(self.notifier.sent_to("assignment_closed"), [self.driver_2km.id])

	def test_stale_read_claim_loses_at_database(self):
		store = DjangoAssignmentStore()
		coordinator = self.coordinator(store=store)
		assignment = coordinator.dispatch(self.order.id).assignment
		stale = store.get(assignment.id)

		coordinator.claim(assignment.id, self.driver_2km.id)
		# Second claimer read the row before the first one committed
		with patch.object(store, "get", side_effect=[stale, Assignment.objects.get(pk=assignment.id)]):
			with self.assertRaises(AlreadyClaimed):
				coordinator.claim(assignment.id, self.driver_8km.id)

		assignment.refresh_from_db()
		self.assertEqual(assignment.claimed_by_id, self.driver_2km.id)

	def test_redispatch_with_empty_pool_escalates(self):
		coordinator = self.coordinator()

		outcome = coordinator.redispatch(self.order.id, attempt=2, radius_km=0.5)

		self.assertIsNone(outcome)
		self.order.refresh_from_db()
		self.assertTrue(self.order.needs_manual_dispatch)

	def test_sweep_then_redispatch_creates_new_attempt(self):
		coordinator = self.coordinator()
		first = coordinator.dispatch(self.order.id).assignment
		self.clock.advance(minutes=5, seconds=1)

		coordinator.sweep_expired()
		order_id, attempt, radius = self.scheduler.calls[0]
		second = coordinator.redispatch(order_id, attempt, radius).assignment

		first.refresh_from_db()
		self.assertEqual(first.status, "expired")
		self.assertEqual(second.attempt, 2)
		self.assertEqual(second.radius_km, 22.5)
		self.assertNotEqual(first.id, second.id)
		self.assertEqual(Order.objects.get(pk=self.order.id).status, "confirmed")

	def test_order_cancelled_before_offers_go_out(self):
		coordinator = self.coordinator()
		real_rank = coordinator.ranker.rank

		def cancel_then_rank(drivers, point, radius_km):
			Order.objects.filter(pk=self.order.id).update(status="cancelled")
			return real_rank(drivers, point, radius_km)

		with patch.object(coordinator.ranker, "rank", side_effect=cancel_then_rank):
			with self.assertRaises(InvalidState):
				coordinator.dispatch(self.order.id)

		assignment = Assignment.objects.get(order=self.order)
		self.assertEqual(assignment.status, "cancelled")
		self.assertEqual(assignment.failure_reason, "Order cancelled")
		self.assertEqual(self.notifier.sent, [])
		self.assertEqual(coordinator.offers_for_driver(self.driver_2km.id), [])

	def test_claim_after_order_cancelled_is_refused(self):
		coordinator = self.coordinator()
		assignment = coordinator.dispatch(self.order.id).assignment
		Order.objects.filter(pk=self.order.id).update(status="cancelled")

		with self.assertRaises(AssignmentCancelled):
			coordinator.claim(assignment.id, self.driver_2km.id)

		assignment.refresh_from_db()
		self.order.refresh_from_db()
		self.assertEqual(assignment.status, "cancelled")
		self.assertIsNone(assignment.claimed_by_id)
		self.assertEqual(self.order.status, "cancelled")
		self.assertIsNone(self.order.assigned_driver_id)
		self.assertEqual(
			sorted(self.notifier.sent_to("assignment_cancelled")),
			sorted([self.driver_2km.id, self.driver_8km.id]),
		)

	def test_stale_snapshot_cannot_claim_past_expiry(self):
		store = DjangoAssignmentStore()
		coordinator = self.coordinator(store=store)
		assignment = coordinator.dispatch(self.order.id).assignment
		stale = store.get(assignment.id)
		stale.expires_at = self.clock.now() + timedelta(hours=1)
		self.clock.advance(minutes=5, seconds=1)

		with patch.object(store, "get", side_effect=[stale, Assignment.objects.get(pk=assignment.id)]):
			with self.assertRaises(AssignmentExpired):
				coordinator.claim(assignment.id, self.driver_2km.id)

		assignment.refresh_from_db()
		self.assertEqual(assignment.status, "pending")
		self.assertIsNone(assignment.claimed_by_id)

	def test_redispatch_skips_drivers_who_rejected(self):
		coordinator = self.coordinator()
		first = coordinator.dispatch(self.order.id).assignment
		coordinator.reject(first.id, self.driver_2km.id)
		self.clock.advance(minutes=5, seconds=1)

		coordinator.sweep_expired()
		order_id, attempt, radius = self.scheduler.calls[0]
		second = coordinator.redispatch(order_id, attempt, radius).assignment

		self.assertEqual(second.candidate_driver_ids, [self.driver_8km.id, self.driver_20km.id])
		self.assertNotIn(self.driver_2km.id, second.notified_driver_ids)

	def test_redispatch_escalates_when_everyone_nearby_rejected(self):
		coordinator = self.coordinator()
		first = coordinator.dispatch(self.order.id).assignment
		coordinator.reject(first.id, self.driver_2km.id)
		coordinator.reject(first.id, self.driver_8km.id)

		self.assertEqual(self.scheduler.calls, [(self.order.id, 2, 22.5)])
		outcome = coordinator.redispatch(self.order.id, attempt=2, radius_km=15)

		self.assertIsNone(outcome)
		self.order.refresh_from_db()
		self.assertTrue(self.order.needs_manual_dispatch)

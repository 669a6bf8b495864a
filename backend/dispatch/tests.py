import uuid
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.utils.clock import FrozenClock
from orders.models import Order
from services.dispatch_management import DispatchConfig, DispatchCoordinator, DjangoAssignmentStore
from services.geo import HaversineDistanceEstimator
from services.tests.factories import create_driver, create_order, create_store
from services.tests.fakes import FakeGeocoder, RecordingNotifier
from .models import Assignment, NotificationAttempt
from .signals import assignment_claimed, dispatch_exhausted
from .tasks import dispatch_order_task, redispatch_order_task, sweep_expired_assignments_task
from .views import (
	assignment_detail,
	cancel_order_dispatch,
	claim_assignment,
	dispatch_order,
	driver_offers,
	reject_assignment,
)


class DispatchTestMixin:
	"""Coordinator with real database store, fake geocoder and recording notifier."""

	def build_fixtures(self):
		self.factory = APIRequestFactory()
		self.clock = FrozenClock(timezone.now().replace(microsecond=0))
		self.notifier = RecordingNotifier()
		self.scheduled = []

		self.merchant = User.objects.create_user(
			username='merchant',
			password='merchant1234',
			role='merchant',
			phone_number='5145550100'
		)
		self.client_user = User.objects.create_user(
			username='client',
			password='client1234',
			role='client',
			phone_number='5145550101'
		)
		# Both within a couple of km of the fake geocoder's delivery point
		self.driver_one = create_driver('driver_one', '45.503000', '-73.566000')
		self.driver_two = create_driver('driver_two', '45.512000', '-73.575000')
		self.outsider = create_driver('outsider', '46.810000', '-71.210000')

		self.store = create_store()
		self.order = create_order(self.store)

	def coordinator(self):
		return DispatchCoordinator(
			store=DjangoAssignmentStore(),
			geocoder=FakeGeocoder(),
			estimator=HaversineDistanceEstimator(30),
			notifier=self.notifier,
			clock=self.clock,
			config=DispatchConfig(notify_timeout_seconds=2),
			redispatch_scheduler=lambda *args: self.scheduled.append(args),
		)

	def dispatched_assignment(self):
		return self.coordinator().dispatch(self.order.id).assignment


class DispatchOrderViewTests(DispatchTestMixin, TestCase):
	def setUp(self):
		self.build_fixtures()
		patcher = patch('dispatch.views.get_coordinator', side_effect=self.coordinator)
		patcher.start()
		self.addCleanup(patcher.stop)

	def post_dispatch(self, user, order_id):
		request = self.factory.post('/api/dispatch/orders/%d/dispatch/' % order_id)
		force_authenticate(request, user=user)
		return dispatch_order(request, order_id=order_id)

	def test_operator_dispatches_confirmed_order(self):
		response = self.post_dispatch(self.merchant, self.order.id)

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['available_drivers'], 2)
		self.assertEqual(response.data['notifications_sent'], 2)
		self.assertEqual(response.data['assignment']['status'], 'pending')
		self.assertEqual(response.data['assignment']['order_number'], 'A-1001')
		self.assertEqual(
			response.data['assignment']['notified_driver_ids'],
			[self.driver_one.id, self.driver_two.id]
		)
		self.assertEqual(len(response.data['assignment']['attempts']), 2)

	def test_only_operators_can_dispatch(self):
		response = self.post_dispatch(self.client_user, self.order.id)

		self.assertEqual(response.status_code, 403)
		self.assertFalse(Assignment.objects.exists())

	def test_unknown_order_is_404(self):
		response = self.post_dispatch(self.merchant, 999999)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'order_not_found')

	def test_no_drivers_is_a_normal_outcome(self):
		User.objects.filter(role='driver').delete()

		response = self.post_dispatch(self.merchant, self.order.id)

		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data['success'])
		self.assertEqual(response.data['error'], 'no_drivers_available')
		self.assertEqual(response.data['available_drivers'], 0)

	def test_second_dispatch_conflicts(self):
		self.post_dispatch(self.merchant, self.order.id)

		response = self.post_dispatch(self.merchant, self.order.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_state')

	def test_all_notifications_failing_is_bad_gateway(self):
		self.notifier.failing = {self.driver_one.id, self.driver_two.id}

		response = self.post_dispatch(self.merchant, self.order.id)

		self.assertEqual(response.status_code, 502)
		self.assertEqual(Assignment.objects.get(order=self.order).status, 'failed')

	def test_cancel_withdraws_open_offers(self):
		self.post_dispatch(self.merchant, self.order.id)

		request = self.factory.post('/api/dispatch/orders/%d/cancel/' % self.order.id)
		force_authenticate(request, user=self.merchant)
		response = cancel_order_dispatch(request, order_id=self.order.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(len(response.data['cancelled_assignments']), 1)
		self.assertEqual(Assignment.objects.get(order=self.order).status, 'cancelled')
		self.assertEqual(
			sorted(self.notifier.sent_to('assignment_cancelled')),
			[self.driver_one.id, self.driver_two.id]
		)


class DriverResponseViewTests(DispatchTestMixin, TestCase):
	def setUp(self):
		self.build_fixtures()
		self.assignment = self.dispatched_assignment()
		patcher = patch('dispatch.views.get_coordinator', side_effect=self.coordinator)
		patcher.start()
		self.addCleanup(patcher.stop)

	def claim(self, user, assignment_id=None):
		assignment_id = assignment_id or self.assignment.id
		request = self.factory.post('/api/dispatch/assignments/%s/claim/' % assignment_id)
		force_authenticate(request, user=user)
		return claim_assignment(request, assignment_id=assignment_id)

	def reject(self, user):
		request = self.factory.post('/api/dispatch/assignments/%s/reject/' % self.assignment.id)
		force_authenticate(request, user=user)
		return reject_assignment(request, assignment_id=self.assignment.id)

	def test_claim_assigns_the_order(self):
		response = self.claim(self.driver_two)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['assignment']['status'], 'claimed')
		self.assertEqual(response.data['assignment']['claimed_by'], self.driver_two.id)
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'assigned')
		self.assertEqual(self.order.assigned_driver, self.driver_two)

	def test_second_claim_conflicts(self):
		self.claim(self.driver_one)

		response = self.claim(self.driver_two)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'already_claimed')

	def test_late_claim_is_gone(self):
		self.clock.advance(minutes=5, seconds=1)

		response = self.claim(self.driver_one)

		self.assertEqual(response.status_code, 410)
		self.assertEqual(response.data['error'], 'expired')

	def test_claim_after_cancel_is_gone(self):
		self.coordinator().cancel(self.order.id)

		response = self.claim(self.driver_one)

		self.assertEqual(response.status_code, 410)
		self.assertEqual(response.data['error'], 'cancelled')

	def cancel_order_without_withdrawing(self):
		# Withdrawal task is queued but has not run yet
		with patch('dispatch.tasks.cancel_order_task.delay'):
			self.order.status = 'cancelled'
			self.order.save()

	def test_claim_on_cancelled_order_is_gone(self):
		self.cancel_order_without_withdrawing()

		response = self.claim(self.driver_one)

		self.assertEqual(response.status_code, 410)
		self.assertEqual(response.data['error'], 'cancelled')
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'cancelled')
		self.assertIsNone(self.order.assigned_driver)
		self.assertEqual(Assignment.objects.get(pk=self.assignment.id).status, 'cancelled')

	def test_reject_on_cancelled_order_is_gone(self):
		self.cancel_order_without_withdrawing()

		response = self.reject(self.driver_one)

		self.assertEqual(response.status_code, 410)
		self.assertEqual(self.scheduled, [])

	def test_cancelled_order_is_not_listed(self):
		self.cancel_order_without_withdrawing()

		request = self.factory.get('/api/dispatch/driver/offers/')
		force_authenticate(request, user=self.driver_one)
		response = driver_offers(request)

		self.assertEqual(response.data['count'], 0)

	def test_driver_not_offered_cannot_claim(self):
		response = self.claim(self.outsider)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'driver_not_eligible')

	def test_unknown_assignment_is_404(self):
		response = self.claim(self.driver_one, assignment_id=uuid.uuid4())

		self.assertEqual(response.status_code, 404)

	def test_non_driver_cannot_claim(self):
		response = self.claim(self.merchant)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(Assignment.objects.get(pk=self.assignment.id).status, 'pending')

	def test_reject_records_response(self):
		response = self.reject(self.driver_one)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'pending')
		attempt = NotificationAttempt.objects.get(assignment=self.assignment, driver=self.driver_one)
		self.assertEqual(attempt.response, 'rejected')
		self.assertIsNotNone(attempt.responded_at)

	def test_everyone_rejecting_triggers_redispatch(self):
		self.reject(self.driver_one)
		response = self.reject(self.driver_two)

		self.assertEqual(response.data['status'], 'expired')
		self.assertEqual(self.scheduled, [(self.order.id, 2, 22.5)])

	def test_driver_offers_lists_open_offers(self):
		request = self.factory.get('/api/dispatch/driver/offers/')
		force_authenticate(request, user=self.driver_one)
		response = driver_offers(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		offer = response.data['offers'][0]
		self.assertEqual(offer['assignment_id'], str(self.assignment.id))
		self.assertEqual(offer['store_name'], 'Epicerie Centrale')
		self.assertIsNotNone(offer['distance_km'])

	def test_rejected_offer_is_not_listed(self):
		self.reject(self.driver_one)

		request = self.factory.get('/api/dispatch/driver/offers/')
		force_authenticate(request, user=self.driver_one)
		response = driver_offers(request)

		self.assertEqual(response.data['count'], 0)

	def test_assignment_detail_visibility(self):
		request = self.factory.get('/api/dispatch/assignments/%s/' % self.assignment.id)
		force_authenticate(request, user=self.driver_one)
		self.assertEqual(assignment_detail(request, assignment_id=self.assignment.id).status_code, 200)

		request = self.factory.get('/api/dispatch/assignments/%s/' % self.assignment.id)
		force_authenticate(request, user=self.outsider)
		self.assertEqual(assignment_detail(request, assignment_id=self.assignment.id).status_code, 403)

		request = self.factory.get('/api/dispatch/assignments/%s/' % self.assignment.id)
		force_authenticate(request, user=self.merchant)
		response = assignment_detail(request, assignment_id=self.assignment.id)
		self.assertEqual(response.data['status'], 'pending')


class DispatchTaskTests(DispatchTestMixin, TestCase):
	def setUp(self):
		self.build_fixtures()
		patcher = patch('dispatch.tasks.get_coordinator', side_effect=self.coordinator)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_dispatch_task_summarises_outcome(self):
		result = dispatch_order_task(self.order.id)

		self.assertTrue(result['success'])
		self.assertEqual(result['status'], 'pending')
		self.assertEqual(result['notifications_sent'], 2)

	def test_dispatch_task_returns_expected_failures(self):
		order = create_order(self.store, number='A-1002', status='pending')

		result = dispatch_order_task(order.id)

		self.assertFalse(result['success'])
		self.assertEqual(result['error_code'], 'invalid_state')

	def test_redispatch_task_escalates_when_nobody_is_near(self):
		result = redispatch_order_task(self.order.id, 2, 0.01)

		self.assertFalse(result['success'])
		self.assertEqual(result['error_code'], 'exhausted')
		self.order.refresh_from_db()
		self.assertTrue(self.order.needs_manual_dispatch)

	def test_sweep_task_expires_and_schedules_next_attempt(self):
		self.dispatched_assignment()
		self.clock.advance(minutes=5)

		result = sweep_expired_assignments_task()

		self.assertEqual(result, {'expired': 1, 'exhausted': 0, 'redispatched': 1, 'failed': 0})
		self.assertEqual(self.scheduled, [(self.order.id, 2, 22.5)])

	def test_sweep_command_reports_counts(self):
		self.dispatched_assignment()
		self.clock.advance(minutes=6)
		out = StringIO()

		with patch(
			'dispatch.management.commands.sweep_expired_assignments.get_coordinator',
			side_effect=self.coordinator
		):
			call_command('sweep_expired_assignments', stdout=out)

		self.assertIn('Expired 1 assignment(s); re-dispatched 1; exhausted 0; failed 0.', out.getvalue())


class OrderLifecycleReceiverTests(TestCase):
	def setUp(self):
		self.store = create_store()

	@override_settings(DISPATCH_AUTO_DISPATCH=True)
	def test_confirming_order_queues_dispatch_after_commit(self):
		order = create_order(self.store, status='pending')

		with patch('dispatch.tasks.dispatch_order_task.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				order.status = 'confirmed'
				order.save()

		delay.assert_called_once_with(order.id)

	def test_auto_dispatch_can_be_disabled(self):
		order = create_order(self.store, status='pending')

		with patch('dispatch.tasks.dispatch_order_task.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				order.status = 'confirmed'
				order.save()

		delay.assert_not_called()

	@override_settings(DISPATCH_AUTO_DISPATCH=True)
	def test_resaving_confirmed_order_does_not_redispatch(self):
		order = create_order(self.store, status='pending')
		order.status = 'confirmed'
		order.save()

		with patch('dispatch.tasks.dispatch_order_task.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				order.delivery_fee = 6
				order.save()

		delay.assert_not_called()

	def test_cancelling_order_withdraws_offers(self):
		order = create_order(self.store)

		with patch('dispatch.tasks.cancel_order_task.delay') as delay:
			with self.captureOnCommitCallbacks(execute=True):
				order.status = 'cancelled'
				order.save()

		delay.assert_called_once_with(order.id)

	def test_claim_only_assigns_confirmed_orders(self):
		driver = create_driver('late', '45.5', '-73.5')
		order = create_order(self.store, status='cancelled')

		assignment_claimed.send(sender=self.__class__, assignment=None, order_id=order.id, driver_id=driver.id)

		order.refresh_from_db()
		self.assertEqual(order.status, 'cancelled')
		self.assertIsNone(order.assigned_driver)

	def test_exhausted_dispatch_flags_order(self):
		order = create_order(self.store)

		dispatch_exhausted.send(sender=self.__class__, order_id=order.id, assignment=None, reason='attempts_exhausted')

		self.assertTrue(Order.objects.get(pk=order.id).needs_manual_dispatch)

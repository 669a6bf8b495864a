from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from common.utils.geo import Coordinates
from services.tests.factories import create_driver
from .models import DriverProfile
from .services import DriverPool
from .views import DriverLocationUpdateView, DriverNotificationTokenView, DriverStatusView


class DriverPoolTests(TestCase):
	def setUp(self):
		self.available = create_driver('available', '45.500000', '-73.560000', rating='4.80')
		self.busy = create_driver('busy', '45.510000', '-73.560000', status='busy')
		self.offline = create_driver('offline', '45.520000', '-73.560000', status='offline')
		self.suspended = create_driver('suspended', '45.530000', '-73.560000')
		DriverProfile.objects.filter(user=self.suspended).update(is_active=False)
		self.unlocated = create_driver('unlocated', None, None)

	def test_only_active_available_located_drivers(self):
		drivers = DriverPool().available_drivers()

		self.assertEqual([d.driver_id for d in drivers], [self.available.id])
		record = drivers[0]
		self.assertEqual(record.coordinates, Coordinates(45.5, -73.56))
		self.assertEqual(record.rating, 4.8)
		self.assertEqual(record.notification_token, 'fcm-available')

	def test_deactivated_user_is_excluded(self):
		self.available.is_active = False
		self.available.save()

		self.assertEqual(DriverPool().available_drivers(), [])

	def test_tokens_for_ignores_status(self):
		tokens = DriverPool().tokens_for([self.available.id, self.busy.id, 424242])

		self.assertEqual(tokens, {self.available.id: 'fcm-available', self.busy.id: 'fcm-busy'})


class DriverEndpointTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.driver = create_driver('driver_one', '45.500000', '-73.560000', token='')
		self.merchant = User.objects.create_user(
			username='merchant',
			password='merchant1234',
			role='merchant',
			phone_number='5145550100'
		)

	def test_register_notification_token(self):
		request = self.factory.put('/api/driver/notification-token/', {'token': 'fcm-new'}, format='json')
		force_authenticate(request, user=self.driver)
		response = DriverNotificationTokenView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(DriverProfile.objects.get(user=self.driver).notification_token, 'fcm-new')

	def test_going_offline_leaves_the_pool(self):
		request = self.factory.put('/api/driver/status/', {'status': 'offline'}, format='json')
		force_authenticate(request, user=self.driver)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(DriverPool().available_drivers(), [])

	def test_location_update_moves_driver(self):
		request = self.factory.post(
			'/api/driver/location/',
			{'latitude': '45.600000', 'longitude': '-73.700000'},
			format='json'
		)
		force_authenticate(request, user=self.driver)
		response = DriverLocationUpdateView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		record = DriverPool().available_drivers()[0]
		self.assertEqual(record.coordinates, Coordinates(45.6, -73.7))

	def test_non_driver_is_forbidden(self):
		request = self.factory.put('/api/driver/status/', {'status': 'offline'}, format='json')
		force_authenticate(request, user=self.merchant)
		response = DriverStatusView.as_view()(request)

		self.assertEqual(response.status_code, 403)

import random
from dataclasses import replace

from django.test import SimpleTestCase

from common.utils.geo import Coordinates
from services.geo import SOURCE_HAVERSINE, FallbackDistanceEstimator, HaversineDistanceEstimator
from services.matching import CandidateRanker

from .fakes import DELIVERY_POINT, TableEstimator, make_driver


class CandidateRankerTests(SimpleTestCase):
	def setUp(self):
		self.near = make_driver(1, 45.52, -73.56)
		self.mid = make_driver(2, 45.56, -73.56)
		self.far = make_driver(3, 45.68, -73.56)
		self.estimator = TableEstimator({
			self.near.coordinates: 2.0,
			self.mid.coordinates: 8.0,
			self.far.coordinates: 20.0,
		})
		self.ranker = CandidateRanker(self.estimator, rating_tie_km=1.0)

	def test_drivers_outside_radius_are_excluded(self):
		ranked = self.ranker.rank([self.far, self.mid, self.near], DELIVERY_POINT, max_radius_km=15)

		self.assertEqual([c.driver_id for c in ranked], [1, 2])
		self.assertEqual([c.distance_km for c in ranked], [2.0, 8.0])

	def test_distance_equal_to_radius_is_kept(self):
		ranked = self.ranker.rank([self.mid], DELIVERY_POINT, max_radius_km=8.0)
		self.assertEqual([c.driver_id for c in ranked], [2])

	def test_drivers_without_coordinates_are_skipped(self):
		unlocated = replace(make_driver(9, 45.50, -73.50), coordinates=None)

		ranked = self.ranker.rank([unlocated, self.near], DELIVERY_POINT, max_radius_km=15)

		self.assertEqual([c.driver_id for c in ranked], [1])

	def test_near_tie_goes_to_higher_rating(self):
		closer = make_driver(10, 45.51, -73.56, rating=3.9)
		better = make_driver(11, 45.515, -73.56, rating=4.9)
		ranker = CandidateRanker(TableEstimator({
			closer.coordinates: 3.0,
			better.coordinates: 3.6,
		}), rating_tie_km=1.0)

		ranked = ranker.rank([closer, better], DELIVERY_POINT)

		self.assertEqual([c.driver_id for c in ranked], [11, 10])

	def test_gap_of_one_km_or_more_ignores_rating(self):
		closer = make_driver(10, 45.51, -73.56, rating=3.0)
		better = make_driver(11, 45.515, -73.56, rating=5.0)
		ranker = CandidateRanker(TableEstimator({
			closer.coordinates: 3.0,
			better.coordinates: 4.0,
		}), rating_tie_km=1.0)

		ranked = ranker.rank([better, closer], DELIVERY_POINT)

		self.assertEqual([c.driver_id for c in ranked], [10, 11])

	def test_ranking_is_deterministic_for_identical_inputs(self):
		rng = random.Random(7)
		drivers = [
			make_driver(i, 45.40 + i * 0.001, -73.60, rating=rng.choice([3.5, 4.0, 4.5, 5.0]))
			for i in range(1, 40)
		]
		table = {d.coordinates: round(rng.uniform(0, 20), 3) for d in drivers}
		ranker = CandidateRanker(TableEstimator(table), rating_tie_km=1.0)

		expected = [c.driver_id for c in ranker.rank(drivers, DELIVERY_POINT)]
		for _ in range(10):
			shuffled = drivers[:]
			rng.shuffle(shuffled)
			self.assertEqual([c.driver_id for c in ranker.rank(shuffled, DELIVERY_POINT)], expected)

	def test_never_returns_candidate_beyond_radius(self):
		rng = random.Random(11)
		for _ in range(25):
			drivers = [
				make_driver(i, rng.uniform(45.3, 45.7), rng.uniform(-73.8, -73.4))
				for i in range(1, 30)
			]
			radius = rng.uniform(1, 25)
			ranker = CandidateRanker(HaversineDistanceEstimator(average_speed_kmh=30), rating_tie_km=1.0)

			for candidate in ranker.rank(drivers, DELIVERY_POINT, max_radius_km=radius):
				self.assertLessEqual(candidate.distance_km, radius)
				self.assertGreaterEqual(candidate.distance_km, 0)

	def test_provider_outage_falls_back_per_driver(self):
		estimator = FallbackDistanceEstimator(
			TableEstimator({self.near.coordinates: 2.0}, unavailable={self.mid.coordinates}),
			HaversineDistanceEstimator(average_speed_kmh=30),
		)
		ranker = CandidateRanker(estimator, rating_tie_km=1.0)

		ranked = ranker.rank([self.near, self.mid], DELIVERY_POINT, max_radius_km=15)

		sources = {c.driver_id: c.distance_source for c in ranked}
		self.assertEqual(sources[1], "network")
		self.assertEqual(sources[2], SOURCE_HAVERSINE)

	def test_candidate_carries_driver_details(self):
		ranked = self.ranker.rank([self.near], Coordinates(45.5017, -73.5673))
		candidate = ranked[0]

		self.assertEqual(candidate.name, "Driver 1")
		self.assertEqual(candidate.notification_token, "token-1")
		self.assertEqual(candidate.completed_deliveries, 10)

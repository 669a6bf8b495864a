"""
Dispatch coordination for confirmed orders.

One DispatchCoordinator.dispatch() call is one attempt: geocode the
delivery address, rank the driver pool, persist a write-ahead assignment,
notify the top candidates concurrently and open the claim window. Claims,
rejections, cancellation and the expiry sweep all resolve the assignment
through the store's compare-and-set, so each terminal state is reached
exactly once no matter how many workers race for it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.utils.module_loading import import_string

from common.utils.clock import SystemClock
from common.utils.geo import Coordinates
from dispatch.models import Assignment
from dispatch.signals import assignment_claimed, dispatch_exhausted
from drivers.services import DriverPool
from orders.models import Order
from services.geo import (
    FallbackDistanceEstimator,
    GeocodingFailed,
    MapboxDistanceEstimator,
    MapboxGeocoder,
)
from services.matching import (
    CandidateRanker,
    DriverCandidate,
    FanoutResult,
    NotifierFanout,
    build_closure_message,
    build_offer_message,
)
from .config import DispatchConfig
from .exceptions import (
    AlreadyClaimed,
    AssignmentCancelled,
    AssignmentExpired,
    AssignmentNotFound,
    DeliveryGeocodingFailed,
    DriverNotEligible,
    InvalidState,
    NoDriversAvailable,
    NotificationDeliveryFailed,
    OrderNotFound,
    StoreWriteConflict,
)
from .store import OPEN_ORDER_STATUS

logger = logging.getLogger(__name__)

PENDING = Assignment.STATUS_PENDING
NOTIFYING = Assignment.STATUS_NOTIFYING
CLAIMED = Assignment.STATUS_CLAIMED
EXPIRED = Assignment.STATUS_EXPIRED
EXHAUSTED = Assignment.STATUS_EXHAUSTED
FAILED = Assignment.STATUS_FAILED
CANCELLED = Assignment.STATUS_CANCELLED

# Sweep outcome: expired and a new attempt was queued
REDISPATCHED = "redispatched"


@dataclass
class DispatchOutcome:
    """Result of one dispatch attempt."""
    assignment: object
    candidates: List[DriverCandidate] = field(default_factory=list)
    fanout: FanoutResult = field(default_factory=FanoutResult)

    @property
    def available_drivers(self) -> int:
        return len(self.candidates)

    @property
    def notifications_sent(self) -> int:
        return self.fanout.sent

    @property
    def notifications_failed(self) -> int:
        return self.fanout.failed


@dataclass
class SweepResult:
    expired: int = 0
    exhausted: int = 0
    redispatched: int = 0
    failed: int = 0


def schedule_redispatch(order_id, attempt: int, radius_km: float) -> None:
    """Queue the next attempt on Celery."""
    from dispatch.tasks import redispatch_order_task

    redispatch_order_task.delay(order_id, attempt, radius_km)


class DispatchCoordinator:

    def __init__(
        self,
        store,
        geocoder,
        estimator,
        notifier,
        driver_pool=None,
        clock=None,
        config: Optional[DispatchConfig] = None,
        redispatch_scheduler=None,
    ):
        self.store = store
        self.geocoder = geocoder
        self.driver_pool = driver_pool or DriverPool()
        self.clock = clock or SystemClock()
        self.config = config or DispatchConfig.from_settings()
        self.ranker = CandidateRanker(estimator, rating_tie_km=self.config.rating_tie_km)
        self.fanout = NotifierFanout(
            notifier,
            timeout=self.config.notify_timeout_seconds,
            max_workers=self.config.max_candidates,
            clock=self.clock,
        )
        self.redispatch_scheduler = redispatch_scheduler or schedule_redispatch

    # ===================== Dispatch =====================

    def dispatch(self, order_id, attempt: int = 1, radius_km: Optional[float] = None) -> DispatchOutcome:
        """
        Run one dispatch attempt for a confirmed order.

        Raises:
            OrderNotFound: unknown order
            InvalidState: order not confirmed, or already has a live/claimed assignment
            DeliveryGeocodingFailed: delivery address could not be geocoded
            NoDriversAvailable: nobody inside the radius (nothing persisted)
            NotificationDeliveryFailed: every send failed (assignment persisted as failed)
        """
        try:
            order = Order.objects.select_related("store").get(pk=order_id)
        except Order.DoesNotExist:
            raise OrderNotFound(f"Order {order_id} not found")

        if order.status != OPEN_ORDER_STATUS:
            raise InvalidState(f"Order {order.order_number} is {order.status}, not confirmed")
        if self.store.live_for_order(order.id) or self.store.has_claim_for_order(order.id):
            raise InvalidState(f"Order {order.order_number} already has an active assignment")

        store_point = self._store_coordinates(order.store)
        delivery_point = self._delivery_coordinates(order)

        if radius_km is None:
            radius_km = self.config.radius_for_attempt(attempt)

        # Drivers who turned this order down on an earlier attempt are not asked again
        declined = self.store.rejected_driver_ids_for_order(order.id)
        pool = [driver for driver in self.driver_pool.available_drivers() if driver.driver_id not in declined]
        ranked = self.ranker.rank(pool, delivery_point, radius_km)
        if not ranked:
            logger.info("No drivers within %.1f km for order %s", radius_km, order.order_number)
            raise NoDriversAvailable(f"No drivers available within {radius_km:g} km")

        top = ranked[:self.config.max_candidates]
        now = self.clock.now()

        # Write-ahead: the record exists before any driver hears about it
        try:
            assignment = self.store.create(
                order_id=order.id,
                store_id=order.store_id,
                attempt=attempt,
                radius_km=radius_km,
                candidate_driver_ids=[c.driver_id for c in top],
                total_amount=order.total_amount,
                delivery_fee=order.delivery_fee,
                status=NOTIFYING,
                created_at=now,
                expires_at=now + self.config.claim_window,
            )
        except StoreWriteConflict as exc:
            raise InvalidState(str(exc)) from exc

        # The order may have been cancelled while we were geocoding and ranking
        current_status = self.store.order_status(order.id)
        if current_status != OPEN_ORDER_STATUS:
            self.store.compare_and_set(
                assignment.id, NOTIFYING, CANCELLED,
                resolved_at=self.clock.now(),
                failure_reason="Order cancelled",
            )
            logger.info(
                "Order %s became %s before offers went out, assignment %s cancelled",
                order.order_number, current_status, assignment.id,
            )
            raise InvalidState(f"Order {order.order_number} is {current_status}, not confirmed")

        deliveries = [
            (candidate, build_offer_message(order, assignment, candidate, order.store.name, store_point))
            for candidate in top
        ]
        result = self.fanout.fanout(deliveries)
        self.store.record_attempts(assignment.id, result.results)

        if result.sent == 0:
            self.store.compare_and_set(
                assignment.id, NOTIFYING, FAILED,
                resolved_at=self.clock.now(),
                failure_reason="No notification could be delivered",
            )
            logger.warning(
                "All %d notifications failed for order %s (assignment %s)",
                result.failed, order.order_number, assignment.id,
            )
            raise NotificationDeliveryFailed(
                f"All {result.failed} notifications failed for order {order.order_number}"
            )

        committed = self.store.compare_and_set(
            assignment.id, NOTIFYING, PENDING,
            notified_driver_ids=result.notified_driver_ids,
            notified_at=self.clock.now(),
        )
        if not committed:
            # Cancelled mid fan-out; the other writer's state stands
            logger.info("Assignment %s resolved during fan-out, leaving it as is", assignment.id)
        else:
            logger.info(
                "Assignment %s pending for order %s: %d/%d drivers notified (attempt %d, %.1f km)",
                assignment.id, order.order_number, result.sent, len(top), attempt, radius_km,
            )

        return DispatchOutcome(
            assignment=self.store.get(assignment.id),
            candidates=ranked,
            fanout=result,
        )

    def redispatch(self, order_id, attempt: int, radius_km: float) -> Optional[DispatchOutcome]:
        """Retry after expiry; an empty or unreachable pool escalates the order."""
        try:
            return self.dispatch(order_id, attempt=attempt, radius_km=radius_km)
        except (NoDriversAvailable, NotificationDeliveryFailed, DeliveryGeocodingFailed) as exc:
            logger.warning("Re-dispatch of order %s (attempt %d) failed: %s", order_id, attempt, exc)
            dispatch_exhausted.send(
                sender=self.__class__, order_id=order_id, assignment=None, reason=exc.code
            )
            return None

    def _store_coordinates(self, store) -> Optional[Coordinates]:
        coordinates = Coordinates.from_values(store.latitude, store.longitude)
        if coordinates is not None:
            return coordinates
        try:
            return self.geocoder.geocode(f"{store.address}, {store.city}", self.config.geocoder_country)
        except GeocodingFailed as exc:
            logger.warning("Could not geocode store %s: %s", store.id, exc)
            return None

    def _delivery_coordinates(self, order) -> Coordinates:
        parts = [order.delivery_address, order.delivery_city, order.delivery_postal_code]
        address = ", ".join(part for part in parts if part)
        try:
            return self.geocoder.geocode(address, self.config.geocoder_country)
        except GeocodingFailed as exc:
            raise DeliveryGeocodingFailed(
                f"Could not geocode delivery address for order {order.order_number}: {exc}"
            ) from exc

    # ===================== Driver responses =====================

    def claim(self, assignment_id, driver_id):
        """
        Claim an assignment for a driver. Exactly one concurrent claim wins.

        Raises:
            AssignmentNotFound, AssignmentExpired, AlreadyClaimed,
            AssignmentCancelled, InvalidState, DriverNotEligible
        """
        now = self.clock.now()
        assignment = self._claimable(assignment_id, driver_id, now)

        if not self.store.claim(assignment.id, assignment.order_id, driver_id, now):
            raise self._lost_claim_error(assignment, now)

        self.store.mark_response(assignment.id, driver_id, "claimed", now)
        assignment = self.store.get(assignment.id)
        logger.info("Driver %s claimed assignment %s", driver_id, assignment.id)

        assignment_claimed.send(
            sender=self.__class__,
            assignment=assignment,
            order_id=assignment.order_id,
            driver_id=driver_id,
        )
        others = [d for d in assignment.notified_driver_ids if d != driver_id]
        self._notify_closed(assignment, others, "assignment_closed")
        return assignment

    def reject(self, assignment_id, driver_id):
        """Record a driver's rejection; once every notified driver has rejected, resolve early."""
        now = self.clock.now()
        assignment = self._claimable(assignment_id, driver_id, now)
        if self.store.order_status(assignment.order_id) != OPEN_ORDER_STATUS:
            self._withdraw(assignment, now)
            raise AssignmentCancelled(f"Order for assignment {assignment.id} was cancelled")

        self.store.mark_response(assignment.id, driver_id, "rejected", now)
        logger.info("Driver %s rejected assignment %s", driver_id, assignment.id)

        rejected = self.store.rejected_driver_ids(assignment.id)
        if set(assignment.notified_driver_ids) <= rejected:
            self._resolve_elapsed(assignment, now, "All notified drivers rejected")

        return self.store.get(assignment.id)

    def _claimable(self, assignment_id, driver_id, now):
        assignment = self.store.get(assignment_id)
        if assignment is None:
            raise AssignmentNotFound(f"Assignment {assignment_id} not found")

        # Window check comes first: a late claim is always Expired
        if now >= assignment.expires_at:
            raise AssignmentExpired(f"Assignment {assignment.id} expired at {assignment.expires_at.isoformat()}")

        if assignment.status == CLAIMED:
            raise AlreadyClaimed(f"Assignment {assignment.id} was already claimed")
        if assignment.status == CANCELLED:
            raise AssignmentCancelled(f"Order for assignment {assignment.id} was cancelled")
        if assignment.status in (EXPIRED, EXHAUSTED):
            raise AssignmentExpired(f"Assignment {assignment.id} is {assignment.status}")
        if assignment.status != PENDING:
            raise InvalidState(f"Assignment {assignment.id} is {assignment.status}")

        if driver_id not in assignment.notified_driver_ids:
            raise DriverNotEligible(f"Driver {driver_id} was not offered assignment {assignment.id}")
        return assignment

    def _lost_claim_error(self, assignment, now):
        fresh = self.store.get(assignment.id)
        if fresh is not None and fresh.status == CLAIMED:
            return AlreadyClaimed(f"Assignment {fresh.id} was already claimed")
        if fresh is not None and fresh.status == CANCELLED:
            return AssignmentCancelled(f"Order for assignment {fresh.id} was cancelled")
        if self.store.order_status(assignment.order_id) != OPEN_ORDER_STATUS:
            # Order cancelled without the assignment hearing about it yet
            self._withdraw(assignment, now)
            return AssignmentCancelled(f"Order for assignment {assignment.id} was cancelled")
        return AssignmentExpired(f"Assignment {assignment.id} is no longer pending")

    # ===================== Cancellation =====================

    def cancel(self, order_id) -> list:
        """Cancel every live assignment of an order and tell its drivers."""
        now = self.clock.now()
        cancelled = []

        for assignment in self.store.live_for_order(order_id):
            fresh = self._withdraw(assignment, now)
            if fresh is not None:
                cancelled.append(fresh)

        return cancelled

    def _withdraw(self, assignment, now):
        """Move a live assignment to cancelled and notify its drivers; None if someone else resolved it first."""
        won = self.store.compare_and_set(
            assignment.id, assignment.status, CANCELLED,
            resolved_at=now,
            failure_reason="Order cancelled",
        )
        if not won:
            return None
        fresh = self.store.get(assignment.id)
        logger.info("Assignment %s cancelled with order %s", assignment.id, assignment.order_id)
        self._notify_closed(fresh, fresh.notified_driver_ids, "assignment_cancelled")
        return fresh

    def _notify_closed(self, assignment, driver_ids, event: str) -> None:
        if not driver_ids:
            return
        tokens = self.driver_pool.tokens_for(driver_ids)
        messages = [
            build_closure_message(assignment, driver_id, tokens.get(driver_id, ""), event)
            for driver_id in driver_ids
        ]
        result = self.fanout.broadcast(messages)
        if result.failed:
            logger.info(
                "%s notice for assignment %s missed %d drivers", event, assignment.id, result.failed
            )

    # ===================== Expiry =====================

    def sweep_expired(self, now=None) -> SweepResult:
        """
        Resolve every pending assignment whose window has elapsed.

        Safe to run concurrently from several workers: a lost CAS means
        someone else already resolved that row.
        """
        now = now or self.clock.now()
        result = SweepResult()

        for assignment in self.store.scan_pending_before(now):
            outcome = self._resolve_elapsed(assignment, now, "Claim window elapsed")
            if outcome in (EXPIRED, REDISPATCHED):
                result.expired += 1
            if outcome == REDISPATCHED:
                result.redispatched += 1
            elif outcome == EXHAUSTED:
                result.exhausted += 1

        # Write-ahead records whose fan-out never committed (worker died)
        for assignment in self.store.scan_notifying_before(now):
            if self.store.compare_and_set(
                assignment.id, NOTIFYING, FAILED,
                resolved_at=now,
                failure_reason="Fan-out did not complete",
            ):
                result.failed += 1
                logger.warning("Stale notifying assignment %s marked failed", assignment.id)

        if result.expired or result.exhausted or result.failed:
            logger.info(
                "Sweep: %d expired, %d exhausted, %d re-dispatched, %d failed",
                result.expired, result.exhausted, result.redispatched, result.failed,
            )
        return result

    def _resolve_elapsed(self, assignment, now, reason: str) -> Optional[str]:
        if assignment.attempt < self.config.max_attempts:
            if not self.store.compare_and_set(
                assignment.id, PENDING, EXPIRED, resolved_at=now, failure_reason=reason
            ):
                return None
            next_attempt = assignment.attempt + 1
            next_radius = assignment.radius_km * self.config.radius_expansion
            logger.info(
                "Assignment %s expired, re-dispatching order %s (attempt %d, %.1f km)",
                assignment.id, assignment.order_id, next_attempt, next_radius,
            )
            try:
                self.redispatch_scheduler(assignment.order_id, next_attempt, next_radius)
            except Exception:
                logger.exception("Could not schedule re-dispatch for order %s", assignment.order_id)
                dispatch_exhausted.send(
                    sender=self.__class__,
                    order_id=assignment.order_id,
                    assignment=assignment,
                    reason="redispatch_unavailable",
                )
                return EXPIRED
            return REDISPATCHED

        if not self.store.compare_and_set(
            assignment.id, PENDING, EXHAUSTED, resolved_at=now, failure_reason=reason
        ):
            return None
        logger.warning(
            "Assignment %s exhausted after %d attempts; order %s needs manual dispatch",
            assignment.id, assignment.attempt, assignment.order_id,
        )
        dispatch_exhausted.send(
            sender=self.__class__,
            order_id=assignment.order_id,
            assignment=self.store.get(assignment.id),
            reason="attempts_exhausted",
        )
        return EXHAUSTED

    # ===================== Queries =====================

    def offers_for_driver(self, driver_id) -> list:
        """Assignments the driver can still claim right now."""
        return self.store.claimable_for_driver(driver_id, self.clock.now())


def get_coordinator(**overrides) -> DispatchCoordinator:
    """Coordinator wired from settings; keyword overrides replace single collaborators."""
    components = {
        "store": lambda: import_string(settings.DISPATCH_ASSIGNMENT_STORE)(),
        "geocoder": MapboxGeocoder,
        "estimator": lambda: FallbackDistanceEstimator(MapboxDistanceEstimator()),
        "notifier": lambda: import_string(settings.DISPATCH_NOTIFIER_BACKEND)(),
    }
    kwargs = {name: overrides.pop(name) if name in overrides else factory()
              for name, factory in components.items()}
    kwargs.update(overrides)
    return DispatchCoordinator(**kwargs)

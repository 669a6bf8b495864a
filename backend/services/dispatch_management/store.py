"""
Assignment persistence.

Every status change goes through compare_and_set, which only writes when
the row is still in the expected status. DjangoAssignmentStore turns that
into a single conditional UPDATE so concurrent coordinators (web workers,
Celery workers, the sweep) serialize in the database, not in memory.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from dispatch.models import Assignment, NotificationAttempt
from orders.models import Order
from .exceptions import StoreWriteConflict

logger = logging.getLogger(__name__)

# Only orders in this status may be offered or claimed
OPEN_ORDER_STATUS = 'confirmed'


class AssignmentStore(ABC):
    """Interface the coordinator relies on. Implementations must make compare_and_set and claim atomic."""

    @abstractmethod
    def create(self, **fields):
        ...

    @abstractmethod
    def get(self, assignment_id):
        ...

    @abstractmethod
    def compare_and_set(self, assignment_id, expected_status: str, new_status: str, **fields) -> bool:
        ...

    @abstractmethod
    def claim(self, assignment_id, order_id, driver_id, now) -> bool:
        """
        pending -> claimed for driver_id, in one atomic step that also requires
        expires_at > now and the order to still be open.
        """

    @abstractmethod
    def order_status(self, order_id) -> Optional[str]:
        ...

    @abstractmethod
    def scan_pending_before(self, timestamp) -> List:
        ...

    @abstractmethod
    def scan_notifying_before(self, timestamp) -> List:
        ...

    @abstractmethod
    def live_for_order(self, order_id) -> List:
        ...

    @abstractmethod
    def has_claim_for_order(self, order_id) -> bool:
        ...

    @abstractmethod
    def record_attempts(self, assignment_id, results: Iterable) -> None:
        ...

    @abstractmethod
    def mark_response(self, assignment_id, driver_id, response: str, responded_at) -> None:
        ...

    @abstractmethod
    def rejected_driver_ids(self, assignment_id) -> Set[int]:
        ...

    @abstractmethod
    def rejected_driver_ids_for_order(self, order_id) -> Set[int]:
        ...

    @abstractmethod
    def claimable_for_driver(self, driver_id, now) -> List:
        ...


class DjangoAssignmentStore(AssignmentStore):
    """AssignmentStore over the dispatch.Assignment table."""

    def create(self, **fields) -> Assignment:
        try:
            with transaction.atomic():
                return Assignment.objects.create(**fields)
        except IntegrityError as exc:
            # Partial unique constraints: one live and one claimed assignment per order
            raise StoreWriteConflict(f"Order {fields.get('order_id')} already has a live assignment") from exc

    def get(self, assignment_id) -> Optional[Assignment]:
        try:
            return Assignment.objects.get(pk=assignment_id)
        except (Assignment.DoesNotExist, ValidationError):
            return None

    def compare_and_set(self, assignment_id, expected_status: str, new_status: str, **fields) -> bool:
        updated = (
            Assignment.objects
            .filter(pk=assignment_id, status=expected_status)
            .update(status=new_status, **fields)
        )
        if not updated:
            logger.debug(
                "CAS %s -> %s lost for assignment %s", expected_status, new_status, assignment_id
            )
        return updated == 1

    def claim(self, assignment_id, order_id, driver_id, now) -> bool:
        with transaction.atomic():
            # Row lock on the order: a concurrent cancellation either commits first
            # (and the claim sees it) or waits until the claim has committed
            order_status = (
                Order.objects.select_for_update()
                .filter(pk=order_id)
                .values_list('status', flat=True)
                .first()
            )
            if order_status != OPEN_ORDER_STATUS:
                return False
            updated = (
                Assignment.objects
                .filter(pk=assignment_id, status=Assignment.STATUS_PENDING, expires_at__gt=now)
                .update(status=Assignment.STATUS_CLAIMED, claimed_by_id=driver_id, resolved_at=now)
            )
        return updated == 1

    def order_status(self, order_id) -> Optional[str]:
        return Order.objects.filter(pk=order_id).values_list('status', flat=True).first()

    def scan_pending_before(self, timestamp) -> List[Assignment]:
        return list(
            Assignment.objects
            .filter(status=Assignment.STATUS_PENDING, expires_at__lte=timestamp)
            .order_by('expires_at')
        )

    def scan_notifying_before(self, timestamp) -> List[Assignment]:
        return list(
            Assignment.objects
            .filter(status=Assignment.STATUS_NOTIFYING, expires_at__lte=timestamp)
            .order_by('expires_at')
        )

    def live_for_order(self, order_id) -> List[Assignment]:
        return list(
            Assignment.objects.filter(order_id=order_id, status__in=Assignment.LIVE_STATUSES)
        )

    def has_claim_for_order(self, order_id) -> bool:
        return Assignment.objects.filter(
            order_id=order_id, status=Assignment.STATUS_CLAIMED
        ).exists()

    def record_attempts(self, assignment_id, results: Iterable) -> None:
        NotificationAttempt.objects.bulk_create([
            NotificationAttempt(
                assignment_id=assignment_id,
                driver_id=result.driver_id,
                rank=result.rank,
                distance_km=result.distance_km,
                success=result.success,
                error=result.error[:255],
                sent_at=result.sent_at,
            )
            for result in results
        ])

    def mark_response(self, assignment_id, driver_id, response: str, responded_at) -> None:
        NotificationAttempt.objects.filter(
            assignment_id=assignment_id, driver_id=driver_id
        ).update(response=response, responded_at=responded_at)

    def rejected_driver_ids(self, assignment_id) -> Set[int]:
        return set(
            NotificationAttempt.objects
            .filter(assignment_id=assignment_id, response='rejected')
            .values_list('driver_id', flat=True)
        )

    def rejected_driver_ids_for_order(self, order_id) -> Set[int]:
        return set(
            NotificationAttempt.objects
            .filter(assignment__order_id=order_id, response='rejected')
            .values_list('driver_id', flat=True)
        )

    def claimable_for_driver(self, driver_id, now) -> List[Assignment]:
        return list(
            Assignment.objects
            .select_related('order', 'store')
            .prefetch_related('attempts')
            .filter(
                status=Assignment.STATUS_PENDING,
                expires_at__gt=now,
                order__status=OPEN_ORDER_STATUS,
                attempts__driver_id=driver_id,
                attempts__success=True,
                attempts__response='none',
            )
            .order_by('expires_at')
        )

"""
Concurrent notification fan-out to ranked drivers.

Every recipient gets its own send with its own deadline. A failed or slow
send never blocks the others; the outcome is an immutable per-recipient
result list from which the coordinator derives who was actually notified.

Notifier backends implement ``send(message)`` and raise NotificationError
on failure. The default backend (Channels) lives in realtime.notifications;
FcmNotifier below talks to Firebase Cloud Messaging directly.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from django.conf import settings

from common.utils.clock import SystemClock
from common.utils.geo import round_km

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised by a notifier backend when a single send did not go through."""
    pass


@dataclass(frozen=True)
class NotificationMessage:
    driver_id: int
    token: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecipientResult:
    """Delivery receipt for one driver."""
    driver_id: int
    rank: int
    distance_km: float
    success: bool
    error: str = ""
    sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class FanoutResult:
    results: Tuple[RecipientResult, ...] = ()

    @property
    def notified_driver_ids(self) -> List[int]:
        """Drivers whose send succeeded, in rank order."""
        return [r.driver_id for r in sorted(self.results, key=lambda r: r.rank) if r.success]

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


def build_offer_message(order, assignment, candidate, store_name: str = "",
                        store_point=None) -> NotificationMessage:
    """
    Build the offer payload for one candidate.

    The data block carries everything the driver app needs to render an
    accept/reject card without fetching the order.
    """
    distance = round_km(candidate.distance_km)
    amount = str(assignment.total_amount)
    body = f"Order #{order.order_number} • {store_name} • {distance} km • {amount}"

    data = {
        "type": "delivery_assignment",
        "action": "accept_delivery",
        "order_id": str(order.id),
        "order_number": order.order_number,
        "assignment_id": str(assignment.id),
        "store_id": str(assignment.store_id),
        "store_name": store_name,
        "distance_km": str(distance),
        "amount": amount,
        "delivery_fee": str(assignment.delivery_fee),
        "expires_at": assignment.expires_at.isoformat(),
    }
    if store_point is not None:
        data["store_latitude"] = str(store_point.latitude)
        data["store_longitude"] = str(store_point.longitude)

    return NotificationMessage(
        driver_id=candidate.driver_id,
        token=candidate.notification_token,
        title="New delivery available",
        body=body,
        data=data,
    )


CLOSURE_TITLES = {
    "assignment_cancelled": "Delivery cancelled",
    "assignment_closed": "Delivery taken",
}


def build_closure_message(assignment, driver_id: int, token: str, event: str) -> NotificationMessage:
    """Tell a notified driver that an offer is no longer claimable."""
    return NotificationMessage(
        driver_id=driver_id,
        token=token,
        title=CLOSURE_TITLES[event],
        body=f"Order {assignment.order_id} is no longer available",
        data={
        "type": event,
        "order_id": str(assignment.order_id),
        "assignment_id": str(assignment.id),
            "status": assignment.status,
        },
    )


class FcmNotifier:
    """Firebase Cloud Messaging (legacy HTTP API) backend."""

    def __init__(self, server_key: Optional[str] = None, send_url: Optional[str] = None,
                 timeout: Optional[float] = None, time_to_live: Optional[int] = None):
        self.server_key = server_key if server_key is not None else settings.FCM_SERVER_KEY
        self.send_url = send_url or settings.FCM_SEND_URL
        self.timeout = timeout if timeout is not None else settings.DISPATCH_NOTIFY_TIMEOUT_SECONDS
        if time_to_live is None:
            time_to_live = settings.DISPATCH_CLAIM_WINDOW_SECONDS
        self.time_to_live = time_to_live

    def send(self, message: NotificationMessage) -> None:
        if not message.token:
            raise NotificationError(f"Driver {message.driver_id} has no notification token")

        payload = {
            "to": message.token,
            "notification": {"title": message.title, "body": message.body},
            "data": message.data,
            "priority": "high",
            "time_to_live": self.time_to_live,
        }
        headers = {
            "Authorization": f"key={self.server_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(self.send_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NotificationError(f"FCM request failed: {exc}") from exc

        if response.status_code != 200:
            raise NotificationError(f"FCM returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if body.get("failure"):
            error = (body.get("results") or [{}])[0].get("error", "unknown")
            raise NotificationError(f"FCM rejected message: {error}")


class NotifierFanout:
    """
    Send one message per candidate concurrently and collect the receipts.

    Pool size is the number of recipients capped at max_workers. Sends that
    miss the deadline are reported as failed; their threads are abandoned,
    not waited on.
    """

    def __init__(self, notifier, timeout: Optional[float] = None,
                 max_workers: Optional[int] = None, clock=None):
        self.notifier = notifier
        self.timeout = timeout if timeout is not None else settings.DISPATCH_NOTIFY_TIMEOUT_SECONDS
        self.max_workers = max_workers or settings.DISPATCH_MAX_CANDIDATES
        self.clock = clock or SystemClock()

    def fanout(self, deliveries: Sequence[Tuple[Any, NotificationMessage]]) -> FanoutResult:
        """
        Args:
            deliveries: (candidate, message) pairs in rank order
        """
        result = self._send_all(
            [message for _, message in deliveries],
            [candidate.distance_km for candidate, _ in deliveries],
        )
        logger.info("Fan-out complete: %d sent, %d failed", result.sent, result.failed)
        return result

    def broadcast(self, messages: Sequence[NotificationMessage]) -> FanoutResult:
        """Best-effort notices (offer closed / cancelled); no ranking involved."""
        return self._send_all(list(messages), [0.0] * len(messages))

    def _send_all(self, messages: List[NotificationMessage], distances: List[float]) -> FanoutResult:
        if not messages:
            return FanoutResult()

        executor = ThreadPoolExecutor(
            max_workers=min(len(messages), self.max_workers),
            thread_name_prefix="dispatch-notify",
        )
        try:
            futures = [executor.submit(self.notifier.send, message) for message in messages]
            wait(futures, timeout=self.timeout)
            sent_at = self.clock.now()

            results = []
            for rank, (message, distance_km, future) in enumerate(zip(messages, distances, futures), start=1):
                error = ""
                if not future.done():
                    future.cancel()
                    error = "timeout"
                else:
                    exc = future.exception()
                    if exc is not None:
                        error = str(exc) or exc.__class__.__name__

                if error:
                    logger.warning("Notification to driver %s failed: %s", message.driver_id, error)

                results.append(
                    RecipientResult(
                        driver_id=message.driver_id,
                        rank=rank,
                        distance_km=distance_km,
                        success=not error,
                        error=error,
                        sent_at=sent_at if not error else None,
                    )
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return FanoutResult(results=tuple(results))

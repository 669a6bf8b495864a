"""Celery tasks for dispatch background processing."""

import logging

from celery import shared_task

from services.dispatch_management import DispatchError, get_coordinator

logger = logging.getLogger(__name__)


def _outcome_summary(outcome):
    return {
        "success": True,
        "assignment_id": str(outcome.assignment.id),
        "status": outcome.assignment.status,
        "available_drivers": outcome.available_drivers,
        "notifications_sent": outcome.notifications_sent,
        "notifications_failed": outcome.notifications_failed,
    }


@shared_task
def dispatch_order_task(order_id: int):
    """
    Dispatch a freshly confirmed order.

    Queued by the orders app once the confirmation has committed.
    Expected dispatch outcomes are logged and returned; anything else
    propagates so Celery records the failure.
    """
    try:
        outcome = get_coordinator().dispatch(order_id)
    except DispatchError as exc:
        logger.warning("Dispatch of order %s ended with %s: %s", order_id, exc.code, exc)
        return {"success": False, "error_code": exc.code, "message": str(exc)}
    return _outcome_summary(outcome)


@shared_task
def redispatch_order_task(order_id: int, attempt: int, radius_km: float):
    """Next dispatch attempt after an assignment expired unclaimed."""
    try:
        outcome = get_coordinator().redispatch(order_id, attempt, radius_km)
    except DispatchError as exc:
        logger.warning("Re-dispatch of order %s ended with %s: %s", order_id, exc.code, exc)
        return {"success": False, "error_code": exc.code, "message": str(exc)}
    if outcome is None:
        return {"success": False, "error_code": "exhausted", "message": "Order escalated"}
    return _outcome_summary(outcome)


@shared_task
def cancel_order_task(order_id: int):
    """Withdraw open offers for a cancelled order."""
    cancelled = get_coordinator().cancel(order_id)
    return {"cancelled": [str(a.id) for a in cancelled]}


@shared_task
def sweep_expired_assignments_task():
    """
    Periodic sweep (Celery beat, every DISPATCH_SWEEP_INTERVAL_SECONDS).

    Idempotent: running it from several workers at once is harmless.
    """
    result = get_coordinator().sweep_expired()
    return {
        "expired": result.expired,
        "exhausted": result.exhausted,
        "redispatched": result.redispatched,
        "failed": result.failed,
    }

"""
Order lifecycle hooks.

Confirming an order queues dispatch; cancelling it withdraws open offers.
Dispatch outcomes come back through dispatch.signals and are written onto
the order here, so the dispatch core never writes order rows itself.
"""

import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver
from django.utils import timezone

from dispatch.signals import assignment_claimed, dispatch_exhausted
from .models import Order

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Order)
def remember_previous_status(sender, instance, **kwargs):
    if instance.pk is None:
        instance._previous_status = None
        return
    instance._previous_status = (
        Order.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
    )


@receiver(post_save, sender=Order)
def react_to_status_change(sender, instance, created, **kwargs):
    previous = getattr(instance, '_previous_status', None)
    if instance.status == previous:
        return

    if instance.status == 'confirmed' and settings.DISPATCH_AUTO_DISPATCH:
        from dispatch.tasks import dispatch_order_task

        order_id = instance.pk
        logger.info("Order %s confirmed, queueing dispatch", instance.order_number)
        transaction.on_commit(lambda: dispatch_order_task.delay(order_id))

    elif instance.status == 'cancelled' and previous is not None:
        from dispatch.tasks import cancel_order_task

        order_id = instance.pk
        logger.info("Order %s cancelled, withdrawing offers", instance.order_number)
        transaction.on_commit(lambda: cancel_order_task.delay(order_id))


@receiver(assignment_claimed)
def mark_order_assigned(sender, order_id, driver_id, **kwargs):
    updated = Order.objects.filter(pk=order_id, status='confirmed').update(
        status='assigned',
        assigned_driver_id=driver_id,
        needs_manual_dispatch=False,
        updated_at=timezone.now(),
    )
    if not updated:
        logger.warning("Order %s was not confirmed when driver %s claimed it", order_id, driver_id)


@receiver(dispatch_exhausted)
def flag_manual_dispatch(sender, order_id, reason, **kwargs):
    Order.objects.filter(pk=order_id).update(needs_manual_dispatch=True, updated_at=timezone.now())
    logger.warning("Order %s needs manual dispatch (%s)", order_id, reason)

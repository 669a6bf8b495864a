import uuid

from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone


class Assignment(models.Model):
    """One dispatch attempt for one order: who was offered it and who won."""

    STATUS_NOTIFYING = 'notifying'
    STATUS_PENDING = 'pending'
    STATUS_CLAIMED = 'claimed'
    STATUS_EXPIRED = 'expired'
    STATUS_EXHAUSTED = 'exhausted'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_NOTIFYING, 'Notifying Drivers'),
        (STATUS_PENDING, 'Pending Claim'),
        (STATUS_CLAIMED, 'Claimed'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_EXHAUSTED, 'Exhausted'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    LIVE_STATUSES = (STATUS_NOTIFYING, STATUS_PENDING)
    TERMINAL_STATUSES = (
        STATUS_CLAIMED, STATUS_EXPIRED, STATUS_EXHAUSTED, STATUS_FAILED, STATUS_CANCELLED,
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        'orders.Order',
        on_delete=models.CASCADE,
        related_name='assignments'
    )
    store = models.ForeignKey(
        'orders.Store',
        on_delete=models.PROTECT,
        related_name='assignments'
    )

    attempt = models.PositiveSmallIntegerField(default=1)
    radius_km = models.FloatField()

    # Ranked top-N chosen for fan-out; never changed after creation
    candidate_driver_ids = models.JSONField(default=list)
    # Drivers whose notification succeeded, rank order; written once
    notified_driver_ids = models.JSONField(default=list)

    # Snapshot so later order edits don't change driver compensation
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_NOTIFYING)
    claimed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='claimed_assignments'
    )

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    notified_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = 'assignments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='assignment_sweep_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['order'],
                condition=Q(status='claimed'),
                name='one_claimed_assignment_per_order'
            ),
            models.UniqueConstraint(
                fields=['order'],
                condition=Q(status__in=['notifying', 'pending']),
                name='one_live_assignment_per_order'
            ),
        ]

    def __str__(self):
        return f"Assignment {self.id} - Order {self.order_id} - {self.status}"

    @property
    def is_live(self):
        return self.status in self.LIVE_STATUSES


class NotificationAttempt(models.Model):
    """Per-recipient delivery receipt and driver response for an assignment."""

    RESPONSE_CHOICES = [
        ('none', 'No Response'),
        ('claimed', 'Claimed'),
        ('rejected', 'Rejected'),
    ]

    assignment = models.ForeignKey(
        Assignment,
        on_delete=models.CASCADE,
        related_name='attempts'
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='dispatch_notifications'
    )

    rank = models.PositiveSmallIntegerField()  # 1 = best candidate
    distance_km = models.FloatField()

    success = models.BooleanField(default=False)
    error = models.CharField(max_length=255, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    response = models.CharField(max_length=10, choices=RESPONSE_CHOICES, default='none')
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'notification_attempts'
        ordering = ['rank']
        constraints = [
            models.UniqueConstraint(
                fields=['assignment', 'driver'],
                name='unique_assignment_driver'
            )
        ]

    def __str__(self):
        return f"Attempt #{self.rank} - Assignment {self.assignment_id} -> Driver {self.driver_id}"

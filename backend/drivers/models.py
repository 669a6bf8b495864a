from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL

class DriverProfile(models.Model):
    """Driver-specific details, availability and last known position"""
    STATUS_CHOICES = [
        ('available', 'Available'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    vehicle_number = models.CharField(max_length=20, blank=True)

    # Account switch managed by admins (document approval lives elsewhere)
    is_active = models.BooleanField(default=True)

    # Status & location
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    # Quality signals used to break near-ties during ranking
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    completed_deliveries = models.PositiveIntegerField(default=0)

    # Opaque address for the notifier (FCM token, device id, ...)
    notification_token = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = 'driver_profiles'
        indexes = [
            models.Index(fields=['status', 'is_active'], name='driver_pool_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.status}"

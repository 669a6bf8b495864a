"""Tells what to show in the Django admin interface for dispatch app"""

from django.contrib import admin
from .models import Assignment, NotificationAttempt


class NotificationAttemptInline(admin.TabularInline):
    model = NotificationAttempt
    extra = 0
    fields = ("rank", "driver", "distance_km", "success", "error", "sent_at", "response", "responded_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Assignment)
class AssignmentAdmin(admin.ModelAdmin):
    """Assignment admin; rows are written by the coordinator only"""
    list_display = ['id', 'order', 'attempt', 'status', 'claimed_by', 'created_at', 'expires_at']
    list_filter = ['status', 'attempt', 'created_at']
    search_fields = ['order__order_number', 'claimed_by__username']
    readonly_fields = [
        'order', 'store', 'attempt', 'radius_km', 'candidate_driver_ids', 'notified_driver_ids',
        'total_amount', 'delivery_fee', 'status', 'claimed_by', 'created_at', 'expires_at',
        'notified_at', 'resolved_at', 'failure_reason',
    ]
    date_hierarchy = 'created_at'
    inlines = [NotificationAttemptInline]


@admin.register(NotificationAttempt)
class NotificationAttemptAdmin(admin.ModelAdmin):
    list_display = ("assignment", "driver", "rank", "success", "response", "sent_at")
    list_filter = ("success", "response")
    search_fields = ("assignment__id", "driver__username")

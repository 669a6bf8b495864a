from django.contrib import admin

from drivers.models import DriverProfile
from drivers import services


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Driver pool as the dispatcher sees it"""

    list_display = [
        "user",
        "status",
        "is_active",
        "rating",
        "completed_deliveries",
        "has_notification_token",
        "last_location_update",
    ]
    list_filter = ["status", "is_active"]
    search_fields = ["user__username", "vehicle_number"]
    readonly_fields = ["last_location_update"]
    actions = ["mark_offline"]

    @admin.display(boolean=True, description="Reachable")
    def has_notification_token(self, obj):
        return bool(obj.notification_token)

    @admin.action(description="Take selected drivers out of the dispatch pool")
    def mark_offline(self, request, queryset):
        for profile in queryset:
            services.update_driver_status(profile, "offline")
        self.message_user(request, f"{queryset.count()} driver(s) set offline")

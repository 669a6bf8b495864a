from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User
from drivers.models import DriverProfile


class DriverProfileInline(admin.StackedInline):
    """Dispatch-relevant driver fields, editable from the user page"""
    model = DriverProfile
    can_delete = False
    extra = 0
    fields = ["vehicle_number", "is_active", "status", "rating", "completed_deliveries", "notification_token"]


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Users by role; drivers carry their profile inline"""

    list_display = ["username", "display_name", "role", "phone_number", "is_active"]
    list_filter = ["role", "is_active", "is_staff"]
    search_fields = ["username", "first_name", "last_name", "phone_number"]
    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Dispatch role", {"fields": ("role", "phone_number")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Dispatch role", {"fields": ("role", "phone_number")}),
    )

    def get_inlines(self, request, obj):
        if obj is not None and obj.role == "driver":
            return [DriverProfileInline]
        return []

from django.contrib import admin
from .models import Store, Order


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ("name", "city", "latitude", "longitude")
    search_fields = ("name", "address", "city")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ["order_number", "store", "status", "assigned_driver", "needs_manual_dispatch", "created_at"]
    list_filter = ["status", "needs_manual_dispatch", "created_at"]
    search_fields = ["order_number", "delivery_address", "store__name"]
    readonly_fields = ["created_at", "updated_at"]
    date_hierarchy = "created_at"

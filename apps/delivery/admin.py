from django.contrib import admin

from apps.delivery.models import DeliverySlot


@admin.register(DeliverySlot)
class DeliverySlotAdmin(admin.ModelAdmin):
    list_display = ("label", "branch", "starts_at", "ends_at", "max_orders", "current_orders", "is_active")
    list_filter = ("is_active", "branch")
    readonly_fields = ("current_orders",)

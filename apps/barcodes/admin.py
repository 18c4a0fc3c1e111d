from django.contrib import admin

from apps.barcodes.models import Barcode


@admin.register(Barcode)
class BarcodeAdmin(admin.ModelAdmin):
    list_display = ("code", "owner", "points_value", "monetary_value", "status", "expires_at", "used_by", "used_at")
    list_filter = ("status",)
    search_fields = ("code", "owner__username", "used_by__username")
    readonly_fields = ("status", "used_by", "used_at", "order", "cancelled_at")

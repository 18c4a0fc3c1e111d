from django.contrib import admin

from apps.inventory.models import StockMovement, StockRow


@admin.register(StockRow)
class StockRowAdmin(admin.ModelAdmin):
    list_display = ("branch", "product", "stock_quantity", "reserved_quantity", "updated_at")
    list_filter = ("branch",)
    search_fields = ("product__sku", "product__name", "branch__code")
    readonly_fields = ("reserved_quantity",)


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("stock_row", "movement_type", "stock_delta", "reserved_delta", "reference_type", "reference_id", "created_at")
    list_filter = ("movement_type",)
    search_fields = ("reference_id", "stock_row__product__sku")

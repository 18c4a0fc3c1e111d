from django.contrib import admin

from apps.loyalty.models import LoyaltyTransaction


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(admin.ModelAdmin):
    list_display = ("user", "transaction_type", "amount", "requested_amount", "order", "barcode", "created_at")
    list_filter = ("transaction_type",)
    search_fields = ("user__username", "description", "order__code", "barcode__code")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin

from apps.returns.models import Return, ReturnLine


class ReturnLineInline(admin.TabularInline):
    model = ReturnLine
    extra = 0
    readonly_fields = ("product", "quantity", "unit_price")
    can_delete = False


@admin.register(Return)
class ReturnAdmin(admin.ModelAdmin):
    list_display = ("code", "order", "user", "status", "refund_amount", "points_to_deduct", "created_at")
    list_filter = ("status",)
    search_fields = ("code", "order__code", "user__username")
    readonly_fields = ("status", "refund_amount", "points_to_deduct", "resolved_by", "resolved_at")
    inlines = [ReturnLineInline]

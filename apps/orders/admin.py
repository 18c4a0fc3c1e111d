from django.contrib import admin

from apps.orders.models import Coupon, CouponUsage, Order, OrderLine


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0
    readonly_fields = ("position", "product", "quantity", "unit_price")
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("code", "user", "status", "total", "points_earned", "points_spent", "created_at")
    list_filter = ("status", "payment_method")
    search_fields = ("code", "user__username", "guest_reference", "redemption_code")
    readonly_fields = ("status", "points_earned", "points_spent", "confirmed_at", "delivered_at", "cancelled_at", "returned_at")
    inlines = [OrderLineInline]


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "used_count", "is_active", "created_at")
    search_fields = ("code",)


@admin.register(CouponUsage)
class CouponUsageAdmin(admin.ModelAdmin):
    list_display = ("coupon", "user", "order", "discount_amount", "created_at")

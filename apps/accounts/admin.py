from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (
        (
            "Store",
            {
                "fields": (
                    "role",
                    "phone",
                    "loyalty_points",
                    "wallet_balance",
                    "is_blocked",
                    "block_reason",
                    "blocked_at",
                    "suspicious_activity",
                    "suspension_warning_count",
                )
            },
        ),
    )
    readonly_fields = ("loyalty_points", "wallet_balance", "blocked_at")
    list_display = DjangoUserAdmin.list_display + ("role", "loyalty_points", "is_blocked")
    list_filter = DjangoUserAdmin.list_filter + ("role", "is_blocked", "suspicious_activity")

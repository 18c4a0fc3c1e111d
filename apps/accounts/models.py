from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    STAFF = "STAFF", "Staff"
    CUSTOMER = "CUSTOMER", "Customer"


class User(AbstractUser):
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.CUSTOMER)
    phone = models.CharField(max_length=50, blank=True)
    # Cached balance; the loyalty ledger is the source of truth.
    loyalty_points = models.IntegerField(default=0)
    wallet_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_blocked = models.BooleanField(default=False)
    block_reason = models.CharField(max_length=255, blank=True)
    blocked_at = models.DateTimeField(null=True, blank=True)
    blocked_by = models.ForeignKey("self", null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    suspicious_activity = models.BooleanField(default=False)
    suspension_warning_count = models.PositiveIntegerField(default=0)
    last_warning_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(loyalty_points__gte=0), name="user_loyalty_points_gte_zero"),
            models.CheckConstraint(condition=models.Q(wallet_balance__gte=0), name="user_wallet_balance_gte_zero"),
        ]

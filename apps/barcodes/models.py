import uuid

from django.db import models
from django.utils import timezone


class BarcodeStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    USED = "used", "Used"
    CANCELLED = "cancelled", "Cancelled"


BARCODE_TRANSITIONS = {
    BarcodeStatus.ACTIVE: {BarcodeStatus.USED, BarcodeStatus.CANCELLED},
    BarcodeStatus.USED: set(),
    BarcodeStatus.CANCELLED: set(),
}


class Barcode(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=40, unique=True)
    owner = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="barcodes")
    points_value = models.PositiveIntegerField()
    monetary_value = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=BarcodeStatus.choices, default=BarcodeStatus.ACTIVE)
    expires_at = models.DateTimeField()
    used_by = models.ForeignKey(
        "accounts.User", null=True, blank=True, on_delete=models.PROTECT, related_name="used_barcodes"
    )
    used_at = models.DateTimeField(null=True, blank=True)
    order = models.ForeignKey("orders.Order", null=True, blank=True, on_delete=models.SET_NULL, related_name="barcodes")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "status"], name="barcode_owner_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(points_value__gt=0), name="barcode_points_gt_zero"),
        ]

    def is_expired(self, now=None):
        return (now or timezone.now()) > self.expires_at

    def __str__(self):
        return self.code

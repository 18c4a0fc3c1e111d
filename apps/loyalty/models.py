import uuid

from django.db import models


class LoyaltyTransactionType(models.TextChoices):
    EARNED = "earned", "Earned"
    REDEMPTION = "redemption", "Redemption"
    DEDUCT = "deduct", "Deduct"
    REFUND = "refund", "Refund"
    DEBIT = "debit", "Debit"
    BARCODE_USED = "barcode_used", "Barcode used"
    ADJUSTMENT = "adjustment", "Adjustment"


class LoyaltyTransaction(models.Model):
    """Append-only loyalty ledger entry.

    ``amount`` is the signed movement actually applied to the balance, so the
    balance always equals the sum of ``amount``. ``requested_amount`` keeps
    the movement that was asked for when a deduction was clamped at zero.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("accounts.User", on_delete=models.PROTECT, related_name="loyalty_transactions")
    amount = models.IntegerField()
    requested_amount = models.IntegerField()
    transaction_type = models.CharField(max_length=20, choices=LoyaltyTransactionType.choices)
    description = models.CharField(max_length=255, blank=True)
    order = models.ForeignKey(
        "orders.Order", null=True, blank=True, on_delete=models.PROTECT, related_name="loyalty_transactions"
    )
    barcode = models.ForeignKey(
        "barcodes.Barcode", null=True, blank=True, on_delete=models.PROTECT, related_name="loyalty_transactions"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="loyaltytx_user_created_idx"),
            models.Index(fields=["transaction_type"], name="loyaltytx_type_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Loyalty transactions are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Loyalty transactions are append-only.")

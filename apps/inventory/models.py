import uuid

from django.db import models


class MovementType(models.TextChoices):
    RESERVED = "RESERVED", "Reserved"
    COMMITTED = "COMMITTED", "Committed"
    RELEASED = "RELEASED", "Released"
    RESTOCKED = "RESTOCKED", "Restocked"
    UNRESTOCKED = "UNRESTOCKED", "Restock reverted"


class StockRow(models.Model):
    """On-hand and reserved quantity of one product at one branch.

    Available to sell is ``stock_quantity - reserved_quantity``. Rows are
    mutated only through ``apps.inventory.services`` and never deleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey("catalog.Branch", on_delete=models.PROTECT, related_name="stock_rows")
    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="stock_rows")
    stock_quantity = models.IntegerField(default=0)
    reserved_quantity = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["branch", "product"]
        constraints = [
            models.UniqueConstraint(fields=["branch", "product"], name="unique_stock_branch_product"),
            models.CheckConstraint(condition=models.Q(reserved_quantity__gte=0), name="stock_reserved_gte_zero"),
            models.CheckConstraint(
                condition=models.Q(reserved_quantity__lte=models.F("stock_quantity")),
                name="stock_reserved_lte_on_hand",
            ),
        ]

    @property
    def available_quantity(self):
        return self.stock_quantity - self.reserved_quantity

    def __str__(self):
        return f"{self.branch_id}/{self.product_id}: {self.stock_quantity} ({self.reserved_quantity} reserved)"


class StockMovement(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    stock_row = models.ForeignKey(StockRow, on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    stock_delta = models.IntegerField(default=0)
    reserved_delta = models.IntegerField(default=0)
    reference_type = models.CharField(max_length=64)
    reference_id = models.CharField(max_length=64)
    created_by = models.ForeignKey(
        "accounts.User", null=True, blank=True, on_delete=models.SET_NULL, related_name="stock_movements"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["reference_type", "reference_id"], name="stockmove_reference_idx"),
        ]

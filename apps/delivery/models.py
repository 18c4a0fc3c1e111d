import uuid

from django.db import models


class DeliverySlot(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey("catalog.Branch", null=True, blank=True, on_delete=models.PROTECT, related_name="delivery_slots")
    label = models.CharField(max_length=80)
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    max_orders = models.PositiveIntegerField()
    current_orders = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["starts_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_orders__lte=models.F("max_orders")),
                name="delivery_slot_current_lte_max",
            ),
        ]

    @property
    def remaining(self):
        return self.max_orders - self.current_orders

    def __str__(self):
        return self.label

from rest_framework import serializers

from apps.delivery.models import DeliverySlot


class DeliverySlotSerializer(serializers.ModelSerializer):
    remaining = serializers.IntegerField(read_only=True)

    class Meta:
        model = DeliverySlot
        fields = ["id", "branch", "label", "starts_at", "ends_at", "max_orders", "current_orders", "remaining"]
        read_only_fields = fields

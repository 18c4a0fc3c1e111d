from rest_framework import serializers

from apps.loyalty.models import LoyaltyTransaction


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source="order.code", read_only=True, default=None)
    barcode_code = serializers.CharField(source="barcode.code", read_only=True, default=None)

    class Meta:
        model = LoyaltyTransaction
        fields = [
            "id",
            "amount",
            "requested_amount",
            "transaction_type",
            "description",
            "order",
            "order_code",
            "barcode",
            "barcode_code",
            "created_at",
        ]
        read_only_fields = fields


class LoyaltyAdjustSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    points = serializers.IntegerField()
    reason = serializers.CharField(max_length=255)

from rest_framework import serializers

from apps.returns.models import Return, ReturnLine, ReturnStatus


class ReturnLineSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = ReturnLine
        fields = ["product", "product_name", "quantity", "unit_price"]
        read_only_fields = fields


class ReturnSerializer(serializers.ModelSerializer):
    lines = ReturnLineSerializer(many=True, read_only=True)
    order_code = serializers.CharField(source="order.code", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)

    class Meta:
        model = Return
        fields = [
            "id",
            "code",
            "order",
            "order_code",
            "user",
            "username",
            "reason",
            "notes",
            "total_amount",
            "border_fee",
            "shipping_fee",
            "refund_amount",
            "points_to_deduct",
            "status",
            "admin_notes",
            "resolved_at",
            "created_at",
            "lines",
        ]
        read_only_fields = fields


class ReturnCheckSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source="order.code", read_only=True)

    class Meta:
        model = Return
        fields = ["code", "order_code", "status", "refund_amount", "created_at", "resolved_at"]
        read_only_fields = fields


class ReturnItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class ReturnCreateSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    items = ReturnItemInputSerializer(many=True, allow_empty=False)
    reason = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReturnStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[ReturnStatus.APPROVED, ReturnStatus.REJECTED])
    admin_notes = serializers.CharField(required=False, allow_blank=True, default="")

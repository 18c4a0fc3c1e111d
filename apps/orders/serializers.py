from rest_framework import serializers

from apps.orders.models import Order, OrderLine, OrderStatus
from apps.orders.services import GUEST_PREFIX


class OrderLineSerializer(serializers.ModelSerializer):
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = OrderLine
        fields = ["position", "product", "product_sku", "product_name", "quantity", "unit_price", "line_total"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    lines = OrderLineSerializer(many=True, read_only=True)
    username = serializers.CharField(source="user.username", read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            "id",
            "code",
            "user",
            "username",
            "guest_reference",
            "branch",
            "delivery_slot",
            "status",
            "payment_method",
            "subtotal",
            "shipping_fee",
            "barcode_discount",
            "coupon_discount",
            "total",
            "redemption_code",
            "coupon",
            "points_earned",
            "points_spent",
            "shipping_info",
            "cancellation_reason",
            "confirmed_at",
            "delivered_at",
            "cancelled_at",
            "returned_at",
            "created_at",
            "updated_at",
            "lines",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = ["id", "code", "user", "status", "total", "points_earned", "points_spent", "created_at"]
        read_only_fields = fields


class OrderTrackingSerializer(serializers.ModelSerializer):
    lines = OrderLineSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = ["code", "status", "total", "created_at", "confirmed_at", "delivered_at", "cancelled_at", "lines"]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class OrderCreateSerializer(serializers.Serializer):
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    branch_id = serializers.UUIDField(required=False, allow_null=True)
    payment_method = serializers.CharField(max_length=32, required=False, default="cod")
    delivery_slot_id = serializers.UUIDField(required=False, allow_null=True)
    redemption_code = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    coupon_code = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    coupon_discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    points_to_spend = serializers.IntegerField(min_value=0, required=False, default=0)
    shipping_fee = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    shipping_info = serializers.JSONField(required=False, allow_null=True)
    guest_reference = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")

    def validate_guest_reference(self, value):
        if value and not value.startswith(GUEST_PREFIX):
            raise serializers.ValidationError("Guest references must start with 'guest-'.")
        return value


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class SuspiciousCustomerSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    username = serializers.CharField()
    email = serializers.EmailField()
    phone = serializers.CharField()
    recent_cancellations = serializers.IntegerField()
    suspension_warning_count = serializers.IntegerField()
    is_blocked = serializers.BooleanField()
    last_warning_date = serializers.DateTimeField(allow_null=True)

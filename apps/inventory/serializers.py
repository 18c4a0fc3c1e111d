from rest_framework import serializers

from apps.inventory.models import StockMovement, StockRow


class StockRowSerializer(serializers.ModelSerializer):
    branch_code = serializers.CharField(source="branch.code", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    available_quantity = serializers.IntegerField(read_only=True)

    class Meta:
        model = StockRow
        fields = [
            "id",
            "branch",
            "branch_code",
            "product",
            "product_sku",
            "product_name",
            "stock_quantity",
            "reserved_quantity",
            "available_quantity",
            "updated_at",
        ]
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    branch = serializers.UUIDField(source="stock_row.branch_id", read_only=True)
    product = serializers.UUIDField(source="stock_row.product_id", read_only=True)
    product_sku = serializers.CharField(source="stock_row.product.sku", read_only=True)
    created_by_username = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            "id",
            "branch",
            "product",
            "product_sku",
            "movement_type",
            "stock_delta",
            "reserved_delta",
            "reference_type",
            "reference_id",
            "created_by",
            "created_by_username",
            "created_at",
        ]
        read_only_fields = fields

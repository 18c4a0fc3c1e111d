from rest_framework import serializers

from apps.barcodes.models import Barcode


class BarcodeSerializer(serializers.ModelSerializer):
    owner_username = serializers.CharField(source="owner.username", read_only=True)
    used_by_username = serializers.CharField(source="used_by.username", read_only=True, default=None)

    class Meta:
        model = Barcode
        fields = [
            "id",
            "code",
            "owner",
            "owner_username",
            "points_value",
            "monetary_value",
            "status",
            "expires_at",
            "used_by",
            "used_by_username",
            "used_at",
            "order",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields


class BarcodePublicSerializer(serializers.ModelSerializer):
    owner = serializers.CharField(source="owner.first_name", read_only=True)

    class Meta:
        model = Barcode
        fields = ["id", "code", "monetary_value", "points_value", "owner", "expires_at"]
        read_only_fields = fields


class BarcodeCreateSerializer(serializers.Serializer):
    points_to_redeem = serializers.IntegerField(min_value=1)


class BarcodeUseSerializer(serializers.Serializer):
    order_id = serializers.IntegerField(required=False, allow_null=True)

from rest_framework import serializers

from apps.accounts.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "role",
            "loyalty_points",
            "wallet_balance",
            "is_blocked",
            "block_reason",
            "blocked_at",
            "suspicious_activity",
            "suspension_warning_count",
        ]
        read_only_fields = fields


class ToggleBlockSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)

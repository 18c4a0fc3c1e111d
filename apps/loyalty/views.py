from django.conf import settings
from rest_framework import generics, status
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.loyalty import services
from apps.loyalty.models import LoyaltyTransaction
from apps.loyalty.serializers import LoyaltyAdjustSerializer, LoyaltyTransactionSerializer


class LoyaltyBalanceView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["loyalty.view.own"]}

    def get(self, request):
        points = request.user.loyalty_points
        unit_points = settings.LOYALTY["POINTS_PER_BARCODE_UNIT"]
        return Response(
            {
                "points": points,
                "redeemable_points": points - points % unit_points,
                "points_per_unit": unit_points,
                "unit_value": settings.LOYALTY["BARCODE_UNIT_VALUE"],
            }
        )


class LoyaltyTransactionListView(generics.ListAPIView):
    serializer_class = LoyaltyTransactionSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["loyalty.view.own"]}

    def get_queryset(self):
        queryset = LoyaltyTransaction.objects.select_related("order", "barcode").filter(user=self.request.user)
        transaction_type = self.request.query_params.get("type")
        if transaction_type:
            queryset = queryset.filter(transaction_type=transaction_type)
        return queryset


class LoyaltyAdjustView(generics.GenericAPIView):
    serializer_class = LoyaltyAdjustSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["loyalty.adjust"]}

    def post(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.adjust(actor=request.user, **serializer.validated_data)
        return Response(LoyaltyTransactionSerializer(entry).data, status=status.HTTP_201_CREATED)

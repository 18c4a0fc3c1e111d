from django.db.models import F
from django.utils import timezone
from rest_framework import generics

from apps.common.permissions import RolePermission
from apps.delivery.models import DeliverySlot
from apps.delivery.serializers import DeliverySlotSerializer


class AvailableDeliverySlotListView(generics.ListAPIView):
    serializer_class = DeliverySlotSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["delivery.view"]}

    def get_queryset(self):
        queryset = DeliverySlot.objects.filter(
            is_active=True,
            starts_at__gte=timezone.now(),
            current_orders__lt=F("max_orders"),
        )
        branch_id = self.request.query_params.get("branch")
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return queryset

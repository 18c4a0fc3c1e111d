from rest_framework import generics, viewsets

from apps.common.permissions import RolePermission
from apps.inventory.models import StockMovement, StockRow
from apps.inventory.serializers import StockMovementSerializer, StockRowSerializer


class StockMovementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StockMovement.objects.select_related("stock_row__product", "created_by")
    serializer_class = StockMovementSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["inventory.view"],
        "retrieve": ["inventory.view"],
    }

    def get_queryset(self):
        queryset = super().get_queryset()
        product_id = self.request.query_params.get("product")
        branch_id = self.request.query_params.get("branch")
        reference_id = self.request.query_params.get("reference_id")
        if product_id:
            queryset = queryset.filter(stock_row__product_id=product_id)
        if branch_id:
            queryset = queryset.filter(stock_row__branch_id=branch_id)
        if reference_id:
            queryset = queryset.filter(reference_id=reference_id)
        return queryset


class StockRowListView(generics.ListAPIView):
    serializer_class = StockRowSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["inventory.view"]}

    def get_queryset(self):
        queryset = StockRow.objects.select_related("branch", "product")
        product_id = self.request.query_params.get("product")
        branch_id = self.request.query_params.get("branch")
        if product_id:
            queryset = queryset.filter(product_id=product_id)
        if branch_id:
            queryset = queryset.filter(branch_id=branch_id)
        return queryset

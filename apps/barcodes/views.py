from rest_framework import generics, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.barcodes import services
from apps.barcodes.models import Barcode
from apps.barcodes.serializers import (
    BarcodeCreateSerializer,
    BarcodePublicSerializer,
    BarcodeSerializer,
    BarcodeUseSerializer,
)
from apps.common.exceptions import ConflictError, NotFoundError
from apps.common.permissions import RolePermission
from apps.orders.models import Order


class BarcodeListCreateView(generics.ListCreateAPIView):
    serializer_class = BarcodeSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["barcodes.manage.own"], "post": ["barcodes.manage.own"]}

    def get_queryset(self):
        return Barcode.objects.select_related("owner", "used_by").filter(owner=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = BarcodeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        barcode = services.create_barcode(user=request.user, points=serializer.validated_data["points_to_redeem"])
        request.user.refresh_from_db(fields=["loyalty_points"])
        data = BarcodeSerializer(barcode).data
        data["remaining_points"] = request.user.loyalty_points
        return Response(data, status=status.HTTP_201_CREATED)


class BarcodeUseView(generics.GenericAPIView):
    serializer_class = BarcodeUseSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["barcodes.use"]}

    def post(self, request, code=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = None
        order_id = serializer.validated_data.get("order_id")
        if order_id:
            order = Order.objects.filter(pk=order_id).first()
            if order is None:
                raise NotFoundError(facts={"order_id": order_id})
        barcode = services.use_barcode(code=code, user=request.user, order=order)
        return Response(
            {
                "discount_amount": barcode.monetary_value,
                "barcode": BarcodeSerializer(barcode).data,
            },
            status=200,
        )


class BarcodeValidateView(generics.GenericAPIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, code=None):
        try:
            barcode = services.validate_barcode(code)
        except ConflictError as exc:
            return Response(
                {"valid": False, "code": exc.default_code, "detail": str(exc.detail), "facts": exc.facts},
                status=200,
            )
        return Response({"valid": True, "barcode": BarcodePublicSerializer(barcode).data}, status=200)


class BarcodeCancelView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["barcodes.manage.own"]}

    def post(self, request, pk=None):
        barcode = services.cancel_barcode(barcode_id=pk, user=request.user)
        return Response(
            {"refunded_points": barcode.points_value, "barcode": BarcodeSerializer(barcode).data},
            status=200,
        )


class BarcodeAdminListView(generics.ListAPIView):
    serializer_class = BarcodeSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["barcodes.view.all"]}

    def get_queryset(self):
        queryset = Barcode.objects.select_related("owner", "used_by")
        status_param = self.request.query_params.get("status")
        if status_param:
            queryset = queryset.filter(status=status_param)
        return queryset

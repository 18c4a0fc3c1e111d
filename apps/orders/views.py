from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.common.exceptions import AuthorizationError, NotFoundError
from apps.common.permissions import RolePermission, has_capability
from apps.orders import services
from apps.orders.models import Order, OrderStatus
from apps.orders.serializers import (
    OrderCancelSerializer,
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    OrderTrackingSerializer,
    SuspiciousCustomerSerializer,
)


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = OrderSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["orders.view.own"],
        "retrieve": ["orders.view.own"],
        "status": ["orders.transition"],
        "cancel": ["orders.cancel.own"],
        "cancelled": ["orders.review"],
        "suspicious_customers": ["orders.review"],
    }

    def get_permissions(self):
        if self.action in {"create", "track"}:
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        queryset = Order.objects.select_related("user").prefetch_related("lines__product")
        if not has_capability(self.request.user, "orders.view.all"):
            queryset = queryset.filter(user=self.request.user)
        status_param = self.request.query_params.get("status")
        if status_param:
            queryset = queryset.filter(status=status_param)
        return queryset

    def get_serializer_class(self):
        if self.action in {"list", "cancelled"}:
            return OrderListSerializer
        return OrderSerializer

    def create(self, request, *args, **kwargs):
        user = request.user if request.user.is_authenticated else None
        if user is not None and not has_capability(user, "orders.create"):
            raise AuthorizationError()
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.create_order(user=user, **serializer.validated_data)
        return Response(
            {"order_id": order.pk, "order_code": order.code, "order": OrderSerializer(order).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def status(self, request, pk=None):
        order = self.get_object()
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.transition_order(
            order_id=order.pk,
            new_status=serializer.validated_data["status"],
            actor=request.user,
            reason=serializer.validated_data["reason"],
        )
        return Response(OrderSerializer(order).data, status=200)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.cancel_order(order_id=pk, user=request.user, reason=serializer.validated_data["reason"])
        return Response(result, status=200)

    @action(detail=False, methods=["get"], url_path=r"track/(?P<code>[^/.]+)")
    def track(self, request, code=None):
        order = Order.objects.prefetch_related("lines__product").filter(code=code.upper()).first()
        if order is None:
            raise NotFoundError(facts={"code": code})
        return Response(OrderTrackingSerializer(order).data, status=200)

    @action(detail=False, methods=["get"])
    def cancelled(self, request):
        queryset = Order.objects.select_related("user").filter(status=OrderStatus.CANCELLED).order_by("-cancelled_at")
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(OrderListSerializer(page, many=True).data)
        return Response(OrderListSerializer(queryset, many=True).data)

    @action(detail=False, methods=["get"], url_path="suspicious-customers")
    def suspicious_customers(self, request):
        customers = services.suspicious_customers()
        return Response(SuspiciousCustomerSerializer(customers, many=True).data, status=200)

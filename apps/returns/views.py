from rest_framework import generics, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from apps.common.exceptions import NotFoundError
from apps.common.permissions import RolePermission
from apps.returns import services
from apps.returns.models import Return
from apps.returns.serializers import (
    ReturnCheckSerializer,
    ReturnCreateSerializer,
    ReturnSerializer,
    ReturnStatusSerializer,
)


class ReturnListCreateView(generics.ListCreateAPIView):
    serializer_class = ReturnSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["returns.view.own"], "post": ["returns.create"]}

    def get_queryset(self):
        return Return.objects.select_related("order", "user").prefetch_related("lines__product").filter(
            user=self.request.user
        )

    def create(self, request, *args, **kwargs):
        serializer = ReturnCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return_request = services.create_return(user=request.user, **serializer.validated_data)
        return Response(ReturnSerializer(return_request).data, status=status.HTTP_201_CREATED)


class ReturnStatusView(generics.GenericAPIView):
    serializer_class = ReturnStatusSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["returns.resolve"]}

    def post(self, request, pk=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return_request = services.update_return_status(
            return_id=pk,
            status=serializer.validated_data["status"],
            admin_notes=serializer.validated_data["admin_notes"],
            actor=request.user,
        )
        return Response(ReturnSerializer(return_request).data, status=200)


class ReturnCheckView(generics.GenericAPIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, code=None):
        return_request = Return.objects.select_related("order").filter(code=code.upper()).first()
        if return_request is None:
            raise NotFoundError(facts={"code": code})
        return Response(ReturnCheckSerializer(return_request).data, status=200)


class ReturnAdminListView(generics.ListAPIView):
    serializer_class = ReturnSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["returns.view.all"]}

    def get_queryset(self):
        queryset = Return.objects.select_related("order", "user").prefetch_related("lines__product")
        status_param = self.request.query_params.get("status")
        if status_param:
            queryset = queryset.filter(status=status_param)
        return queryset

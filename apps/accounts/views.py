from rest_framework import generics
from rest_framework.response import Response

from apps.accounts import services
from apps.accounts.serializers import ToggleBlockSerializer, UserSummarySerializer
from apps.common.permissions import RolePermission


class ToggleBlockView(generics.GenericAPIView):
    serializer_class = ToggleBlockSerializer
    permission_classes = [RolePermission]
    capability_map = {"post": ["accounts.block"]}

    def post(self, request, pk=None):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = services.toggle_block(actor=request.user, user_id=pk, reason=serializer.validated_data.get("reason", ""))
        return Response(UserSummarySerializer(user).data, status=200)

from rest_framework import generics
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.notifications import services
from apps.notifications.serializers import NotificationSerializer


class NotificationListView(generics.ListAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["notifications.view"]}

    def get_queryset(self):
        queryset = services.inbox_for(self.request.user)
        if str(self.request.query_params.get("unread")).lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(is_read=False)
        return queryset


class NotificationReadView(generics.GenericAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [RolePermission]
    capability_map = {"put": ["notifications.view"], "post": ["notifications.view"]}

    def put(self, request, pk=None):
        notification = services.mark_read(user=request.user, notification_id=pk)
        return Response(self.get_serializer(notification).data, status=200)

    def post(self, request, pk=None):
        return self.put(request, pk=pk)


class NotificationReadAllView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"put": ["notifications.view"], "post": ["notifications.view"]}

    def put(self, request):
        updated = services.mark_all_read(user=request.user)
        return Response({"updated": updated}, status=200)

    def post(self, request):
        return self.put(request)


class UnreadCountView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["notifications.view"]}

    def get(self, request):
        return Response({"count": services.unread_count(request.user)}, status=200)

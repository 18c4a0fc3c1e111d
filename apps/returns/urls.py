from django.urls import path

from apps.returns.views import ReturnAdminListView, ReturnCheckView, ReturnListCreateView, ReturnStatusView

urlpatterns = [
    path("", ReturnListCreateView.as_view(), name="return-list"),
    path("all/", ReturnAdminListView.as_view(), name="return-admin-list"),
    path("check/<str:code>/", ReturnCheckView.as_view(), name="return-check"),
    path("<uuid:pk>/status/", ReturnStatusView.as_view(), name="return-status"),
]

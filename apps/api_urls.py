from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("accounts/", include("apps.accounts.urls")),
    path("inventory/", include("apps.inventory.urls")),
    path("delivery/", include("apps.delivery.urls")),
    path("loyalty/", include("apps.loyalty.urls")),
    path("barcodes/", include("apps.barcodes.urls")),
    path("returns/", include("apps.returns.urls")),
    path("notifications/", include("apps.notifications.urls")),
    path("", include("apps.orders.urls")),
]

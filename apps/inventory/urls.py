from django.urls import path
from rest_framework.routers import DefaultRouter

from apps.inventory.views import StockMovementViewSet, StockRowListView

router = DefaultRouter()
router.register("movements", StockMovementViewSet, basename="stock-movement")

urlpatterns = [
    path("stocks/", StockRowListView.as_view(), name="inventory-stock"),
]
urlpatterns += router.urls

from django.urls import path

from apps.delivery.views import AvailableDeliverySlotListView

urlpatterns = [
    path("slots/", AvailableDeliverySlotListView.as_view(), name="delivery-slot-list"),
]

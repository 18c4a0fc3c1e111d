from django.urls import path

from apps.barcodes.views import (
    BarcodeAdminListView,
    BarcodeCancelView,
    BarcodeListCreateView,
    BarcodeUseView,
    BarcodeValidateView,
)

urlpatterns = [
    path("", BarcodeListCreateView.as_view(), name="barcode-list"),
    path("all/", BarcodeAdminListView.as_view(), name="barcode-admin-list"),
    path("<uuid:pk>/cancel/", BarcodeCancelView.as_view(), name="barcode-cancel"),
    path("<str:code>/use/", BarcodeUseView.as_view(), name="barcode-use"),
    path("<str:code>/validate/", BarcodeValidateView.as_view(), name="barcode-validate"),
]

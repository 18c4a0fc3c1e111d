from django.urls import path

from apps.loyalty.views import LoyaltyAdjustView, LoyaltyBalanceView, LoyaltyTransactionListView

urlpatterns = [
    path("balance/", LoyaltyBalanceView.as_view(), name="loyalty-balance"),
    path("transactions/", LoyaltyTransactionListView.as_view(), name="loyalty-transactions"),
    path("adjust/", LoyaltyAdjustView.as_view(), name="loyalty-adjust"),
]

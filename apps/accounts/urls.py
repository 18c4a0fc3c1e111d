from django.urls import path

from apps.accounts.views import ToggleBlockView

urlpatterns = [
    path("<int:pk>/toggle-block/", ToggleBlockView.as_view(), name="account-toggle-block"),
]

from django.contrib import admin

from apps.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("event", "title", "user", "is_read", "created_at")
    list_filter = ("event", "is_read")
    search_fields = ("title", "user__username")

from django.contrib import admin

from apps.audit.models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "entity_type", "entity_id", "actor", "actor_role", "created_at")
    list_filter = ("action", "entity_type", "actor_role")
    search_fields = ("entity_id", "actor__username")
    readonly_fields = ("actor", "actor_role", "action", "entity_type", "entity_id", "payload", "created_at")

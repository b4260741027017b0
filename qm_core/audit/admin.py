# qm_core/audit/admin.py
from django.contrib import admin

from qm_core.audit.models import SystemLog


@admin.register(SystemLog)
class SystemLogAdmin(admin.ModelAdmin):
    list_display = ("action", "entity_type", "entity_id", "organization_id", "actor_user", "occurred_at")
    list_filter = ("action", "entity_type")
    search_fields = ("action", "entity_type", "entity_id")
    readonly_fields = ("id", "organization_id", "action", "entity_type", "entity_id", "actor_user", "details", "occurred_at")
    ordering = ("-occurred_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin

from qm_core.queues.models import QueueSetting


@admin.register(QueueSetting)
class QueueSettingAdmin(admin.ModelAdmin):
    list_display = (
        "organization_id",
        "customer_type",
        "prefix",
        "current_number",
        "max_number",
        "reset_daily",
        "reset_time",
        "is_active",
        "updated_at",
    )
    list_filter = ("customer_type", "is_active", "reset_daily")
    search_fields = ("organization_id", "prefix")
    ordering = ("organization_id", "customer_type")
    # sequence changes go through NumberingAuthority / QueueSettingService.reset
    readonly_fields = ("current_number", "last_reset_at", "created_at", "updated_at")

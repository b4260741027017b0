from django.contrib import admin

from qm_core.tokens.models import Token


@admin.register(Token)
class TokenAdmin(admin.ModelAdmin):
    list_display = (
        "number",
        "organization_id",
        "customer_type",
        "status",
        "priority",
        "counter",
        "created_at",
        "called_at",
        "completed_at",
    )
    list_filter = ("status", "customer_type")
    search_fields = ("number", "organization_id")
    ordering = ("-created_at",)
    raw_id_fields = ("counter", "served_by", "issued_by")
    # lifecycle fields move only through TokenService
    readonly_fields = (
        "number",
        "status",
        "called_at",
        "served_at",
        "completed_at",
        "cancelled_at",
        "actual_wait_time",
        "service_duration",
        "created_at",
        "updated_at",
    )

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin

from qm_core.counters.models import Counter


@admin.register(Counter)
class CounterAdmin(admin.ModelAdmin):
    list_display = ("name", "organization_id", "is_active", "assigned_staff", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name", "organization_id", "assigned_staff__username")
    ordering = ("organization_id", "name")
    raw_id_fields = ("assigned_staff",)

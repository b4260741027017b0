# qm_core/iam/admin.py
from __future__ import annotations

from django.contrib import admin

from qm_core.iam.models import ServiceSession, UserProfile


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "organization", "role", "is_active", "created_at", "updated_at")
    list_filter = ("organization", "role", "is_active")
    search_fields = ("user__username", "user__email")
    autocomplete_fields = ("user",)
    ordering = ("-created_at",)


@admin.register(ServiceSession)
class ServiceSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "staff", "organization_id", "started_at", "ended_at", "tokens_served", "average_service_time")
    list_filter = ("organization_id",)
    search_fields = ("staff__username",)
    ordering = ("-started_at",)

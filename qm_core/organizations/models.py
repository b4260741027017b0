# qm_core/organizations/models.py
import uuid

from django.db import models


class Organization(models.Model):
    """
    Tenant boundary. Owns counters, queue settings, tokens and logs.
    NOT an OrganizationScopedModel (it *is* the scope).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64, unique=True)

    # Documented keys only, see OrganizationSettingsSerializer.
    settings = models.JSONField(default=dict, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "organizations_organization"
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"

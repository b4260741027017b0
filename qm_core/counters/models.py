# qm_core/counters/models.py
from django.conf import settings
from django.db import models

from qm_core.common.models import OrganizationScopedModel


class Counter(OrganizationScopedModel):
    """
    A service point. At most one staff member is assigned at a time,
    and a staff member holds at most one counter per organization.
    """
    name = models.CharField(max_length=50)
    description = models.CharField(max_length=255, blank=True, default="")

    is_active = models.BooleanField(default=True)

    assigned_staff = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_counters",
    )

    class Meta:
        db_table = "counters_counter"
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(fields=["organization_id", "name"], name="uq_counter_org_name"),
        ]
        indexes = [
            models.Index(fields=["organization_id", "is_active"], name="counter_org_active_idx"),
            models.Index(fields=["organization_id", "assigned_staff"], name="counter_org_staff_idx"),
        ]

    def __str__(self) -> str:
        return self.name

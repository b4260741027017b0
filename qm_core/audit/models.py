# qm_core/audit/models.py
import uuid

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class SystemLog(models.Model):
    """
    Append-only audit trail. One row per state-changing operation.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.UUIDField(db_index=True)

    action = models.CharField(max_length=64, db_index=True)  # e.g. "token_called"
    entity_type = models.CharField(max_length=64, db_index=True)  # e.g. "Token"
    entity_id = models.CharField(max_length=64, blank=True, default="")  # blank for batch entries

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="system_logs",
        null=True,
        blank=True,
    )

    details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "audit_system_log"
        ordering = ["-occurred_at"]
        indexes = [
            models.Index(fields=["organization_id", "occurred_at"], name="audit_log_org_time_idx"),
            models.Index(fields=["entity_type", "entity_id"], name="audit_log_entity_idx"),
            models.Index(fields=["organization_id", "action"], name="audit_log_org_action_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.entity_type}:{self.entity_id}"

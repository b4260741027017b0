# qm_core/tokens/models.py
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from qm_core.common.models import OrganizationScopedModel
from qm_core.queues.models import CustomerType


class TokenStatus(models.TextChoices):
    WAITING = "waiting", "Waiting"
    CALLED = "called", "Called"
    SERVING = "serving", "Serving"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    NO_SHOW = "no_show", "No show"


ACTIVE_STATUSES = (TokenStatus.WAITING, TokenStatus.CALLED)
CANCELLABLE_STATUSES = ACTIVE_STATUSES

PRIORITY_MIN = 0
PRIORITY_MAX = 10


class Token(OrganizationScopedModel):
    """
    One customer's place in line.

    Status changes only through TokenService; rows are never deleted
    (cancellation is a status).
    """
    counter = models.ForeignKey(
        "counters.Counter",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tokens",
    )

    number = models.CharField(max_length=16)
    customer_type = models.CharField(max_length=16, choices=CustomerType.choices)
    status = models.CharField(max_length=16, choices=TokenStatus.choices, default=TokenStatus.WAITING)
    priority = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(PRIORITY_MIN), MaxValueValidator(PRIORITY_MAX)],
    )

    called_at = models.DateTimeField(null=True, blank=True)
    served_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    served_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="served_tokens",
    )
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="issued_tokens",
    )

    # minutes
    estimated_wait_time = models.PositiveIntegerField(null=True, blank=True)
    actual_wait_time = models.PositiveIntegerField(null=True, blank=True)
    service_duration = models.PositiveIntegerField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "tokens_token"
        ordering = ["-priority", "created_at"]
        indexes = [
            models.Index(
                fields=["organization_id", "customer_type", "status", "-priority", "created_at"],
                name="token_queue_order_idx",
            ),
            models.Index(fields=["organization_id", "status", "created_at"], name="token_org_status_idx"),
            models.Index(fields=["counter", "status"], name="token_counter_status_idx"),
            models.Index(fields=["organization_id", "completed_at"], name="token_org_completed_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.number} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

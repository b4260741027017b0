# qm_core/queues/models.py
from datetime import time
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from qm_core.common.models import OrganizationScopedModel


class CustomerType(models.TextChoices):
    INSTANT = "instant", "Instant"
    BROWSER = "browser", "Browser"
    RETAIL = "retail", "Retail"


class QueueSetting(OrganizationScopedModel):
    """
    Numbering sequence + configuration for one (organization, customer type).
    current_number is only mutated under a row lock (see NumberingAuthority).
    """
    customer_type = models.CharField(max_length=16, choices=CustomerType.choices)

    prefix = models.CharField(max_length=5)
    current_number = models.PositiveIntegerField(default=0)
    max_number = models.PositiveIntegerField(default=999, validators=[MinValueValidator(1)])

    reset_daily = models.BooleanField(default=True)
    reset_time = models.TimeField(default=time(0, 0))
    last_reset_at = models.DateTimeField(null=True, blank=True)

    # wrap back to 1 after max_number, or refuse to issue
    wrap_at_max = models.BooleanField(default=True)

    # display/ranking weight only; call-next ordering ignores it
    priority_multiplier = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        default=Decimal("1.00"),
        validators=[MinValueValidator(Decimal("0.10")), MaxValueValidator(Decimal("10.00"))],
    )

    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "queues_queue_setting"
        ordering = ["customer_type"]
        constraints = [
            models.UniqueConstraint(
                fields=["organization_id", "customer_type"],
                name="uq_queue_setting_org_type",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.customer_type} ({self.prefix}{self.current_number:03d}/{self.max_number})"

    @staticmethod
    def default_prefix(customer_type: str) -> str:
        return customer_type[:1].upper()

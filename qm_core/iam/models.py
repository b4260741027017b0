# qm_core/iam/models.py
import uuid

from django.conf import settings
from django.db import models

from qm_core.organizations.models import Organization


class UserRole(models.TextChoices):
    STAFF = "staff", "Staff"
    ADMIN = "admin", "Admin"
    SUPER_ADMIN = "super_admin", "Super admin"


class UserProfile(models.Model):
    """
    Organization membership + role for an auth user.
    One organization per user.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="qm_profile")
    organization = models.ForeignKey(Organization, on_delete=models.PROTECT, related_name="members")

    role = models.CharField(max_length=16, choices=UserRole.choices, default=UserRole.STAFF)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "iam_user_profile"
        indexes = [
            models.Index(fields=["organization", "is_active"], name="iam_profile_org_active_idx"),
            models.Index(fields=["organization", "role"], name="iam_profile_org_role_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.user.username} ({self.organization.code}, {self.role})"


class ServiceSession(models.Model):
    """
    A stretch of work at the desk for one staff member.
    Opened explicitly or by the first call-next; completed services roll into
    tokens_served / average_service_time. At most one open session per user.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    organization_id = models.UUIDField(db_index=True)
    staff = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="service_sessions")

    started_at = models.DateTimeField(db_index=True)
    ended_at = models.DateTimeField(null=True, blank=True)

    tokens_served = models.PositiveIntegerField(default=0)
    # minutes, running mean over tokens_served
    average_service_time = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)

    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "iam_service_session"
        ordering = ["-started_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["staff"],
                condition=models.Q(ended_at__isnull=True),
                name="uq_service_session_open_per_staff",
            ),
        ]
        indexes = [
            models.Index(fields=["organization_id", "staff", "started_at"], name="iam_session_org_staff_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.staff_id} {self.started_at:%Y-%m-%d %H:%M} ({'open' if self.is_open else 'closed'})"

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def duration_minutes(self) -> int | None:
        if self.ended_at is None:
            return None
        return max(0, int((self.ended_at - self.started_at).total_seconds() // 60))

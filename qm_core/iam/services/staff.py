# qm_core/iam/services/staff.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework.exceptions import AuthenticationFailed, PermissionDenied, ValidationError

from qm_core.audit.services import AuditService
from qm_core.common.api.exceptions import NotFoundError
from qm_core.iam.models import UserProfile, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffUpdate:
    """
    Patch object: only non-None fields are applied.
    """
    role: Optional[str] = None
    is_active: Optional[bool] = None
    email: Optional[str] = None


class StaffService:
    """
    Staff/admin account management inside one organization.
    """

    @staticmethod
    def _sync_role_group(user, role: str) -> None:
        role_groups = Group.objects.filter(name__in=UserRole.values)
        user.groups.remove(*role_groups)
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)

    @staticmethod
    def _check_grant(*, actor_is_super_admin: bool, role: str) -> None:
        if role not in UserRole.values:
            raise ValidationError({"role": f"Invalid role. Allowed: {list(UserRole.values)}"})
        if role == UserRole.SUPER_ADMIN and not actor_is_super_admin:
            raise PermissionDenied("Only super administrators can grant the super_admin role.")

    @staticmethod
    def _get_scoped(*, organization_id: UUID, user_id: int) -> UserProfile:
        profile = (
            UserProfile.objects.select_for_update()
            .select_related("user")
            .filter(organization_id=organization_id, user_id=user_id)
            .first()
        )
        if profile is None:
            raise NotFoundError("Staff member not found.")
        return profile

    @staticmethod
    @transaction.atomic
    def create_staff(
        *,
        organization_id: UUID,
        username: str,
        password: str,
        email: str = "",
        role: str = UserRole.STAFF,
        actor_user_id: int | None = None,
        actor_is_super_admin: bool = False,
    ) -> UserProfile:
        StaffService._check_grant(actor_is_super_admin=actor_is_super_admin, role=role)

        User = get_user_model()
        if User.objects.filter(username=username).exists():
            raise ValidationError({"username": "A user with that username already exists."})

        user = User.objects.create_user(username=username, password=password, email=email or "")
        profile = UserProfile.objects.create(user=user, organization_id=organization_id, role=role)
        StaffService._sync_role_group(user, role)

        AuditService.log(
            action="user_created",
            entity_type="User",
            entity_id=user.id,
            organization_id=organization_id,
            actor_user_id=actor_user_id,
            details={"username": username, "role": role},
        )
        logger.info("Staff user %s created in organization %s", username, organization_id)
        return profile

    @staticmethod
    @transaction.atomic
    def update_staff(
        *,
        organization_id: UUID,
        user_id: int,
        patch: StaffUpdate,
        actor_user_id: int | None = None,
        actor_is_super_admin: bool = False,
    ) -> UserProfile:
        profile = StaffService._get_scoped(organization_id=organization_id, user_id=user_id)
        user = profile.user
        changes: dict = {}

        if patch.role is not None and patch.role != profile.role:
            StaffService._check_grant(actor_is_super_admin=actor_is_super_admin, role=patch.role)
            if profile.role == UserRole.SUPER_ADMIN and not actor_is_super_admin:
                raise PermissionDenied("Only super administrators can change a super_admin account.")
            changes["role"] = {"old": profile.role, "new": patch.role}
            profile.role = patch.role
            StaffService._sync_role_group(user, patch.role)

        if patch.is_active is not None and patch.is_active != profile.is_active:
            changes["is_active"] = {"old": profile.is_active, "new": patch.is_active}
            profile.is_active = patch.is_active
            if not patch.is_active:
                StaffService._release_counters(organization_id=organization_id, user_id=user_id)

        if patch.email is not None and patch.email != user.email:
            changes["email"] = {"old": user.email, "new": patch.email}
            user.email = patch.email
            user.save(update_fields=["email"])

        if not changes:
            return profile

        profile.save(update_fields=["role", "is_active", "updated_at"])

        AuditService.log(
            action="user_updated",
            entity_type="User",
            entity_id=user_id,
            organization_id=organization_id,
            actor_user_id=actor_user_id,
            details=changes,
        )
        return profile

    @staticmethod
    def deactivate(
        *,
        organization_id: UUID,
        user_id: int,
        actor_user_id: int | None = None,
        actor_is_super_admin: bool = False,
    ) -> UserProfile:
        if actor_user_id is not None and actor_user_id == user_id:
            raise ValidationError({"detail": "You cannot deactivate your own account."})
        return StaffService.update_staff(
            organization_id=organization_id,
            user_id=user_id,
            patch=StaffUpdate(is_active=False),
            actor_user_id=actor_user_id,
            actor_is_super_admin=actor_is_super_admin,
        )

    @staticmethod
    def _release_counters(*, organization_id: UUID, user_id: int) -> None:
        from qm_core.counters.models import Counter

        Counter.objects.filter(organization_id=organization_id, assigned_staff_id=user_id).update(
            assigned_staff=None
        )

    @staticmethod
    @transaction.atomic
    def reactivate(
        *,
        organization_id: UUID,
        user_id: int,
        actor_user_id: int | None = None,
        actor_is_super_admin: bool = False,
    ) -> UserProfile:
        profile = StaffService._get_scoped(organization_id=organization_id, user_id=user_id)
        if profile.role == UserRole.SUPER_ADMIN and not actor_is_super_admin:
            raise PermissionDenied("Only super administrators can change a super_admin account.")
        if profile.is_active and profile.user.is_active:
            return profile

        profile.is_active = True
        profile.save(update_fields=["is_active", "updated_at"])
        if not profile.user.is_active:
            profile.user.is_active = True
            profile.user.save(update_fields=["is_active"])

        AuditService.log(
            action="user_reactivated",
            entity_type="User",
            entity_id=user_id,
            organization_id=organization_id,
            actor_user_id=actor_user_id,
            details={"username": profile.user.username},
        )
        logger.info("Staff user %s reactivated in organization %s", profile.user.username, organization_id)
        return profile

    @staticmethod
    @transaction.atomic
    def change_password(*, user, current_password: str, new_password: str) -> None:
        """
        Self-service. The current password must match; the new one goes
        through AUTH_PASSWORD_VALIDATORS.
        """
        if not user.check_password(current_password):
            logger.warning("Password change rejected for user %s: wrong current password", user.id)
            raise AuthenticationFailed("Current password is incorrect.")
        if current_password == new_password:
            raise ValidationError({"new_password": "New password must differ from the current one."})
        _validate_new_password(new_password, user)

        user.set_password(new_password)
        user.save(update_fields=["password"])

        profile = UserProfile.objects.filter(user_id=user.id).first()
        if profile is not None:
            AuditService.log(
                action="password_changed",
                entity_type="User",
                entity_id=user.id,
                organization_id=profile.organization_id,
                actor_user_id=user.id,
                details={},
            )
        logger.info("User %s changed their password", user.id)

    @staticmethod
    @transaction.atomic
    def reset_password(
        *,
        organization_id: UUID,
        user_id: int,
        new_password: str,
        actor_user_id: int | None = None,
        actor_is_super_admin: bool = False,
    ) -> UserProfile:
        """
        Admin sets a new password for a member of their organization.
        """
        profile = StaffService._get_scoped(organization_id=organization_id, user_id=user_id)
        if profile.role == UserRole.SUPER_ADMIN and not actor_is_super_admin:
            raise PermissionDenied("Only super administrators can change a super_admin account.")

        user = profile.user
        _validate_new_password(new_password, user)
        user.set_password(new_password)
        user.save(update_fields=["password"])

        AuditService.log(
            action="password_reset",
            entity_type="User",
            entity_id=user_id,
            organization_id=organization_id,
            actor_user_id=actor_user_id,
            details={"username": user.username},
        )
        logger.info("Password reset for user %s by %s", user_id, actor_user_id)
        return profile


def _validate_new_password(password: str, user) -> None:
    try:
        validate_password(password, user=user)
    except DjangoValidationError as exc:
        raise ValidationError({"new_password": list(exc.messages)})

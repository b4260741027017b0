# qm_core/iam/services/membership.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from qm_core.iam.models import UserProfile, UserRole


def get_active_profile(*, user_id: int) -> Optional[UserProfile]:
    return (
        UserProfile.objects.select_related("organization")
        .filter(user_id=user_id, is_active=True, user__is_active=True)
        .first()
    )


def is_user_member_of_organization(*, user, organization_id: UUID) -> bool:
    """
    Single source of truth used by scope enforcement.
    Super admins (or Django superusers) may act on any organization.
    """
    if getattr(user, "is_superuser", False):
        return True

    profile = get_active_profile(user_id=user.id)
    if profile is None:
        return False

    if profile.role == UserRole.SUPER_ADMIN:
        return True

    return profile.organization_id == organization_id


def is_active_member(*, user_id: int, organization_id: UUID) -> bool:
    return UserProfile.objects.filter(
        user_id=user_id,
        organization_id=organization_id,
        is_active=True,
        user__is_active=True,
    ).exists()

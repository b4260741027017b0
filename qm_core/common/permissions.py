# qm_core/common/permissions.py

from __future__ import annotations

from typing import Set

from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import SAFE_METHODS, BasePermission

ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"

ALL_ROLES = (ROLE_STAFF, ROLE_ADMIN, ROLE_SUPER_ADMIN)

STAFF_AND_UP = {ROLE_STAFF, ROLE_ADMIN, ROLE_SUPER_ADMIN}
ADMIN_AND_UP = {ROLE_ADMIN, ROLE_SUPER_ADMIN}


def _user_roles(user) -> Set[str]:
    """
    Resolve roles from:
    1) superuser flag (treated as super_admin)
    2) the active UserProfile.role
    3) Django groups named after a role (kept in sync by `ensure_roles`)
    """
    roles: Set[str] = set()

    if not user or not getattr(user, "is_authenticated", False):
        return roles

    if getattr(user, "is_superuser", False):
        roles.add(ROLE_SUPER_ADMIN)
        return roles

    profile = getattr(user, "qm_profile", None)
    if profile is not None and profile.is_active and profile.role:
        roles.add(profile.role)

    if hasattr(user, "groups"):
        for name in user.groups.values_list("name", flat=True):
            if name.lower() in ALL_ROLES:
                roles.add(name.lower())

    return roles


def user_has_role(user, *roles: str) -> bool:
    return bool(_user_roles(user) & set(roles))


def ensure_scope_on_request(request) -> bool:
    """
    Ensure request.organization_id exists.

    Permissions must not raise ValidationError (it becomes 400):
    return False when the scope is missing/invalid -> DRF returns 403.
    """
    if getattr(request, "organization_id", None):
        return True

    from qm_core.iam.scope import apply_scope

    try:
        organization_id = apply_scope(request, user=getattr(request, "user", None))
    except (ValidationError, PermissionDenied):
        return False

    return organization_id is not None


class BaseRolePermission(BasePermission):
    """
    Role-based access control for organization-scoped ViewSets.

    - Requires an authenticated user and a resolved organization scope.
    - super_admin bypass.
    - allowed_roles_per_action for strict RBAC.
    - Unknown SAFE actions fall back to list/retrieve.
    """
    message = "You do not have permission to perform this action."

    # Override in subclasses: dict of action -> set of allowed roles
    allowed_roles_per_action = {
        "list": STAFF_AND_UP,
        "retrieve": STAFF_AND_UP,
        "create": ADMIN_AND_UP,
        "update": ADMIN_AND_UP,
        "partial_update": ADMIN_AND_UP,
        "destroy": ADMIN_AND_UP,
    }

    def _infer_action(self, request, view) -> str | None:
        action = getattr(view, "action", None)
        if action:
            return action

        kwargs = getattr(view, "kwargs", {}) or {}
        is_detail = "pk" in kwargs or "id" in kwargs

        method = request.method.upper()
        if method in ("GET", "HEAD", "OPTIONS"):
            return "retrieve" if is_detail else "list"
        if method == "POST":
            return "create"
        if method == "PUT":
            return "update"
        if method == "PATCH":
            return "partial_update"
        if method == "DELETE":
            return "destroy"
        return None

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not getattr(user, "is_authenticated", False):
            return False

        if not ensure_scope_on_request(request):
            return False

        roles = _user_roles(user)

        if ROLE_SUPER_ADMIN in roles:
            return True

        action = self._infer_action(request, view)
        allowed = self.allowed_roles_per_action.get(action)

        if allowed is None and request.method in SAFE_METHODS:
            kwargs = getattr(view, "kwargs", {}) or {}
            is_detail = "pk" in kwargs or "id" in kwargs
            allowed = self.allowed_roles_per_action.get("retrieve" if is_detail else "list")

        if allowed is not None:
            return bool(roles & allowed)

        # Unknown action => deny
        return False

    def has_object_permission(self, request, view, obj) -> bool:
        return self.has_permission(request, view)


class CounterPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": STAFF_AND_UP,
        "retrieve": STAFF_AND_UP,
        "available": STAFF_AND_UP,
        "counter_status": STAFF_AND_UP,
        "create": ADMIN_AND_UP,
        "partial_update": ADMIN_AND_UP,
        "destroy": ADMIN_AND_UP,
        "activate": ADMIN_AND_UP,
        "deactivate": ADMIN_AND_UP,
        "assign": ADMIN_AND_UP,
        "unassign": ADMIN_AND_UP,
        "select": STAFF_AND_UP,
        "release": STAFF_AND_UP,
    }


class QueuePermission(BaseRolePermission):
    allowed_roles_per_action = {
        "queue_status": STAFF_AND_UP,
        "call_next": STAFF_AND_UP,
        "statistics": STAFF_AND_UP,
        "queue_settings": STAFF_AND_UP,
        "update_settings": ADMIN_AND_UP,
        "reset": ADMIN_AND_UP,
    }


class StaffPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ADMIN_AND_UP,
        "retrieve": ADMIN_AND_UP,
        "create": ADMIN_AND_UP,
        "partial_update": ADMIN_AND_UP,
        "deactivate": ADMIN_AND_UP,
        "reactivate": ADMIN_AND_UP,
        "reset_password": ADMIN_AND_UP,
        "sessions": STAFF_AND_UP,
        "start_session": STAFF_AND_UP,
        "end_session": STAFF_AND_UP,
        "performance": STAFF_AND_UP,
    }


class AuditPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": ADMIN_AND_UP,
    }


class SuperAdminPermission(BasePermission):
    """
    Platform-level endpoints (organizations). No organization scope needed.
    """
    message = "Only super administrators can manage organizations."

    def has_permission(self, request, view) -> bool:
        return ROLE_SUPER_ADMIN in _user_roles(request.user)

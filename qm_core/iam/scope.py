# qm_core/iam/scope.py
from __future__ import annotations

from uuid import UUID

from rest_framework.exceptions import PermissionDenied, ValidationError

from qm_core.iam.services import membership

HDR_ORGANIZATION = "X-Organization-Id"

MISSING_SCOPE_MSG = "Missing organization scope. Provide X-Organization-Id or use an account that belongs to an organization."
INVALID_SCOPE_MSG = "Invalid X-Organization-Id header. Provide a valid UUID."
NOT_A_MEMBER_MSG = "You do not have access to the selected organization."


def _get_header(request, name: str) -> str | None:
    # request.headers is case-insensitive; fallback to META for RequestFactory/APIClient
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v
    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def resolve_organization_from_headers(request) -> UUID | None:
    """
    Returns the organization UUID from X-Organization-Id, None when absent.
    Raises 400 ValidationError when the header is not a UUID.
    """
    raw = _get_header(request, HDR_ORGANIZATION)
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise ValidationError(INVALID_SCOPE_MSG)


def assert_user_membership(user, organization_id: UUID) -> None:
    if not user or not getattr(user, "is_authenticated", False):
        raise PermissionDenied("Authentication required to set organization scope.")

    if not membership.is_user_member_of_organization(user=user, organization_id=organization_id):
        raise PermissionDenied(NOT_A_MEMBER_MSG)


def apply_scope(request, user=None) -> UUID | None:
    """
    Public API used by the auth layer and the permission layer.

    - Header present: validate it, verify membership, attach it.
    - Header absent: attach the caller's own profile organization (if any).

    Sets request.organization_id and returns it (or None when nothing applies).
    """
    u = user or getattr(request, "user", None)

    organization_id = resolve_organization_from_headers(request)
    if organization_id is not None:
        assert_user_membership(u, organization_id)
    elif u is not None and getattr(u, "is_authenticated", False):
        profile = membership.get_active_profile(user_id=u.id)
        organization_id = profile.organization_id if profile else None

    request.organization_id = organization_id
    return organization_id


def require_organization(request) -> UUID:
    organization_id = getattr(request, "organization_id", None) or apply_scope(request)
    if organization_id is None:
        raise ValidationError(MISSING_SCOPE_MSG)
    return organization_id

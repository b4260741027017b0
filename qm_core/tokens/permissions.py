# qm_core/tokens/permissions.py

from __future__ import annotations

from qm_core.common.permissions import ADMIN_AND_UP, STAFF_AND_UP, BaseRolePermission


class TokenPermission(BaseRolePermission):
    """
    Token lifecycle RBAC. The public actions (issue, position lookup)
    swap this class out for AllowAny in the ViewSet.
    """
    allowed_roles_per_action = {
        "list": STAFF_AND_UP,
        "retrieve": STAFF_AND_UP,
        "create": STAFF_AND_UP,
        "partial_update": STAFF_AND_UP,
        "start_serving": STAFF_AND_UP,
        "complete": STAFF_AND_UP,
        "no_show": STAFF_AND_UP,
        "recall": STAFF_AND_UP,
        "announce": STAFF_AND_UP,
        "cancel": STAFF_AND_UP,
        "bulk_update": ADMIN_AND_UP,
        "bulk_delete": ADMIN_AND_UP,
    }

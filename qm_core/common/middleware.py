from __future__ import annotations

from uuid import UUID

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from qm_core.common.api.exceptions import build_error_envelope
from qm_core.iam.scope import INVALID_SCOPE_MSG, NOT_A_MEMBER_MSG

SCOPE_HEADER = "HTTP_X_ORGANIZATION_ID"


class OrganizationScopeMiddleware(MiddlewareMixin):
    """
    Checks X-Organization-Id for session-authenticated API calls.

    - malformed UUID -> 400 envelope
    - caller not a member of that organization -> 403 envelope
    - otherwise request.organization_id is set

    Anonymous and JWT requests pass through untouched; JWT users are only known
    after DRF authentication, which runs the same checks (qm_core.iam.scope).
    """

    API_PREFIX = "/api/"
    SKIPPED_PREFIXES = ("/api/docs/", "/api/schema/")
    AUTH_SUFFIXES = ("/auth/login/", "/auth/refresh/", "/auth/logout/")

    def _reject(self, request, status_code: int, code: str, message: str) -> JsonResponse:
        return JsonResponse(build_error_envelope(request=request, code=code, message=message), status=status_code)

    def _applies_to(self, path: str) -> bool:
        if not path.startswith(self.API_PREFIX) or path.startswith(self.SKIPPED_PREFIXES):
            return False
        return not path.endswith(self.AUTH_SUFFIXES)

    def process_request(self, request):
        request.organization_id = None

        if not self._applies_to(getattr(request, "path", "") or ""):
            return None

        user = getattr(request, "user", None)
        raw = request.META.get(SCOPE_HEADER)
        if not raw or not user or not user.is_authenticated:
            return None

        try:
            organization_id = UUID(str(raw))
        except ValueError:
            return self._reject(request, 400, "validation_error", INVALID_SCOPE_MSG)

        from qm_core.iam.services.membership import is_user_member_of_organization

        if not is_user_member_of_organization(user=user, organization_id=organization_id):
            return self._reject(request, 403, "permission_denied", NOT_A_MEMBER_MSG)

        request.organization_id = organization_id
        return None

# qm_core/common/openapi.py
from __future__ import annotations

from drf_spectacular.openapi import AutoSchema
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter


class QueueAutoSchema(AutoSchema):
    """
    Adds the optional X-Organization-Id header to organization-scoped endpoints.
    Auth/me, organization admin, public and schema endpoints are left alone.
    """

    ORGANIZATION_HEADER = OpenApiParameter(
        name="X-Organization-Id",
        type=OpenApiTypes.UUID,
        location=OpenApiParameter.HEADER,
        required=False,
        description=(
            "Organization scope UUID. Defaults to the caller's own organization; "
            "super admins use it to act on any organization."
        ),
    )

    UNSCOPED_MODULE_PREFIXES = (
        "qm_core.iam.api.auth",
        "qm_core.iam.api.me",
        "qm_core.organizations.api.",
    )

    PUBLIC_ACTIONS = {"public", "position", "queue_status"}

    def _is_unscoped_endpoint(self) -> bool:
        view = getattr(self, "view", None)
        if view is None:
            return False

        if view.__class__.__name__ in {"SpectacularAPIView", "SpectacularSwaggerView"}:
            return True

        module = view.__class__.__module__ or ""
        if module.startswith(self.UNSCOPED_MODULE_PREFIXES):
            return True

        return getattr(view, "action", None) in self.PUBLIC_ACTIONS

    def get_override_parameters(self):
        params = list(super().get_override_parameters() or [])

        if not self._is_unscoped_endpoint():
            existing = {p.name.lower() for p in params}
            if self.ORGANIZATION_HEADER.name.lower() not in existing:
                params.append(self.ORGANIZATION_HEADER)

        return params

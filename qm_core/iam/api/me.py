# qm_core/iam/api/me.py

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from qm_core.common.permissions import _user_roles
from qm_core.iam.api.schema_serializers import MeResponseSerializer
from qm_core.iam.scope import apply_scope
from qm_core.iam.services.membership import get_active_profile


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: MeResponseSerializer}, tags=["IAM"])
    def get(self, request):
        """
        User info, role and organization.
        X-Organization-Id is optional; when provided it must be valid and the user must be a member.
        """
        organization_id = getattr(request, "organization_id", None) or apply_scope(request, user=request.user)

        profile = get_active_profile(user_id=request.user.id)
        organization = None
        if profile is not None:
            organization = {
                "id": str(profile.organization_id),
                "code": profile.organization.code,
                "name": profile.organization.name,
            }

        return Response(
            {
                "user": {
                    "id": request.user.id,
                    "username": getattr(request.user, "username", None),
                    "email": getattr(request.user, "email", None),
                    "is_superuser": bool(getattr(request.user, "is_superuser", False)),
                },
                "role": profile.role if profile else None,
                "roles": sorted(_user_roles(request.user)),
                "organization": organization,
                "active_organization_id": str(organization_id) if organization_id else None,
            },
            status=status.HTTP_200_OK,
        )

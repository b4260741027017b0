# qm_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from qm_core.audit.api.serializers import SystemLogSerializer
from qm_core.audit.models import SystemLog
from qm_core.audit.selectors import list_system_logs
from qm_core.common.permissions import AuditPermission
from qm_core.iam.scope import require_organization


class SystemLogViewSet(viewsets.GenericViewSet):
    """
    Read-only audit trail of the caller's organization.
    """
    permission_classes = [AuditPermission]

    serializer_class = SystemLogSerializer
    queryset = SystemLog.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: SystemLogSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="action", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                             description="Filter by action (e.g. token_called, queue_reset)."),
            OpenApiParameter(name="entity_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                             description="Filter by entity type (Token, QueueSetting, Counter, User)."),
            OpenApiParameter(name="entity_id", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="actor_user_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="limit", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False,
                             description="Max records to return (default 200, max 500)."),
        ],
    )
    def list(self, request):
        organization_id = require_organization(request)

        actor_user_raw = request.query_params.get("actor_user_id")
        actor_user_id = None
        if actor_user_raw:
            try:
                actor_user_id = int(actor_user_raw)
            except ValueError:
                raise ValidationError({"actor_user_id": "Invalid actor_user_id (int expected)."})

        qs = list_system_logs(
            organization_id=organization_id,
            action=request.query_params.get("action") or None,
            entity_type=request.query_params.get("entity_type") or None,
            entity_id=request.query_params.get("entity_id") or None,
            actor_user_id=actor_user_id,
        )

        limit = request.query_params.get("limit")
        try:
            limit_n = int(limit) if limit else 200
        except ValueError:
            limit_n = 200
        limit_n = max(1, min(limit_n, 500))

        return Response(SystemLogSerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)

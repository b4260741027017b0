# qm_core/queues/api/views.py
from __future__ import annotations

from uuid import UUID

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from qm_core.common.api.exceptions import NotFoundError
from qm_core.common.permissions import QueuePermission
from qm_core.common.throttling import PublicScopedRateThrottle
from qm_core.iam.scope import require_organization
from qm_core.organizations.selectors import get_by_code_or_none
from qm_core.queues.api.serializers import QueueResetSerializer, QueueSettingSerializer, QueueSettingUpdateSerializer
from qm_core.queues.models import QueueSetting
from qm_core.queues.selectors import list_queue_settings
from qm_core.queues.services import QueueSettingPatch, QueueSettingService
from qm_core.tokens.api.serializers import (
    CallNextSerializer,
    QueueStatisticsSerializer,
    QueueStatusSerializer,
    StatisticsQuerySerializer,
    TokenSerializer,
)
from qm_core.tokens.selectors import get_queue_statistics, get_queue_status
from qm_core.tokens.services import TokenService


class QueueViewSet(viewsets.ViewSet):
    """
    Queue-level endpoints: live status, call-next, settings, reset, statistics.
    """

    permission_classes = [QueuePermission]
    throttle_scope = None

    serializer_class = QueueSettingSerializer
    queryset = QueueSetting.objects.none()

    def _status_organization(self, request) -> UUID:
        """
        Staff dashboards use their own scope; display screens pass ?organization=<code>
        (or rely on QM_DEFAULT_ORGANIZATION_CODE).
        """
        if request.user and request.user.is_authenticated:
            return require_organization(request)

        code = request.query_params.get("organization") or getattr(settings, "QM_DEFAULT_ORGANIZATION_CODE", "")
        org = get_by_code_or_none(code=code) if code else None
        if org is None or not org.is_active:
            raise NotFoundError("Organization not found.")
        return org.id

    @extend_schema(
        tags=["Queue"],
        responses={200: QueueStatusSerializer},
        parameters=[
            OpenApiParameter(name="organization", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                             description="Organization code (anonymous display screens)."),
            OpenApiParameter(name="counter_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(
        detail=False,
        methods=["get"],
        url_path="status",
        permission_classes=[AllowAny],
        throttle_classes=[PublicScopedRateThrottle],
        throttle_scope="queue_status",
    )
    def queue_status(self, request):
        organization_id = self._status_organization(request)

        counter_id = None
        raw = request.query_params.get("counter_id")
        if raw:
            try:
                counter_id = UUID(raw)
            except ValueError:
                raise ValidationError({"counter_id": "Must be a valid UUID."})

        snapshot = get_queue_status(organization_id=organization_id, counter_id=counter_id)
        return Response(QueueStatusSerializer(snapshot).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Queue"], request=CallNextSerializer, responses={200: TokenSerializer})
    @action(detail=False, methods=["post"], url_path="call-next")
    def call_next(self, request):
        organization_id = require_organization(request)
        ser = CallNextSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = TokenService().call_next(
            organization_id=organization_id,
            counter_id=ser.validated_data["counter_id"],
            staff_user_id=request.user.id,
            customer_type=ser.validated_data.get("customer_type"),
        )
        if token is None:
            return Response({"token": None, "message": "No tokens waiting."}, status=status.HTTP_200_OK)
        return Response({"token": TokenSerializer(token).data, "message": None}, status=status.HTTP_200_OK)

    @extend_schema(tags=["Queue"], responses={200: QueueSettingSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="settings")
    def queue_settings(self, request):
        organization_id = require_organization(request)
        qs = list_queue_settings(organization_id=organization_id)
        return Response(QueueSettingSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Queue"], request=QueueSettingUpdateSerializer, responses={200: QueueSettingSerializer})
    @queue_settings.mapping.patch
    def update_settings(self, request):
        organization_id = require_organization(request)
        ser = QueueSettingUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        data = dict(ser.validated_data)
        customer_type = data.pop("customer_type")
        setting = QueueSettingService().upsert(
            organization_id=organization_id,
            customer_type=customer_type,
            patch=QueueSettingPatch(**data),
            actor_user_id=request.user.id,
        )
        return Response(QueueSettingSerializer(setting).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Queue"], request=QueueResetSerializer, responses={200: QueueSettingSerializer(many=True)})
    @action(detail=False, methods=["post"])
    def reset(self, request):
        organization_id = require_organization(request)
        ser = QueueResetSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        rows = QueueSettingService().reset(
            organization_id=organization_id,
            customer_type=ser.validated_data.get("customer_type"),
            actor_user_id=request.user.id,
        )
        return Response(QueueSettingSerializer(rows, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Queue"],
        responses={200: QueueStatisticsSerializer},
        parameters=[
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    @action(detail=False, methods=["get"])
    def statistics(self, request):
        organization_id = require_organization(request)
        ser = StatisticsQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)

        stats = get_queue_statistics(
            organization_id=organization_id,
            date_from=ser.validated_data.get("date_from"),
            date_to=ser.validated_data.get("date_to"),
        )
        return Response(QueueStatisticsSerializer(stats).data, status=status.HTTP_200_OK)

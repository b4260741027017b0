# qm_core/organizations/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from qm_core.common.api.exceptions import NotFoundError
from qm_core.common.permissions import SuperAdminPermission
from qm_core.organizations.api.serializers import (
    OrganizationActiveUpdateSerializer,
    OrganizationCreateSerializer,
    OrganizationSerializer,
    OrganizationSettingsSerializer,
    OrganizationSettingsUpdateSerializer,
)
from qm_core.organizations.models import Organization
from qm_core.organizations.selectors import get_organization_or_none, organization_qs
from qm_core.organizations.services import OrganizationService


def _settings_json(validated: dict | None) -> dict:
    """Render validated settings back to their JSON form (dates/times as strings)."""
    if not validated:
        return {}
    return dict(OrganizationSettingsSerializer(validated).data)


@extend_schema_view(
    list=extend_schema(tags=["Organizations"], responses={200: OrganizationSerializer(many=True)}),
    retrieve=extend_schema(tags=["Organizations"], responses={200: OrganizationSerializer}),
    create=extend_schema(tags=["Organizations"], request=OrganizationCreateSerializer, responses={201: OrganizationSerializer}),
    set_settings=extend_schema(tags=["Organizations"], request=OrganizationSettingsUpdateSerializer, responses={200: OrganizationSerializer}),
    set_active=extend_schema(tags=["Organizations"], request=OrganizationActiveUpdateSerializer, responses={200: OrganizationSerializer}),
)
class OrganizationViewSet(viewsets.ViewSet):
    """
    Super-admin organization management.
    """

    permission_classes = [SuperAdminPermission]

    serializer_class = OrganizationSerializer
    queryset = Organization.objects.none()

    def _pk(self, pk) -> UUID:
        try:
            return UUID(str(pk))
        except ValueError:
            raise NotFoundError("Organization not found.")

    def list(self, request):
        qs = organization_qs().order_by("-created_at")[:300]
        return Response(OrganizationSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    def retrieve(self, request, pk=None):
        org = get_organization_or_none(organization_id=self._pk(pk))
        if org is None:
            raise NotFoundError("Organization not found.")
        return Response(OrganizationSerializer(org).data, status=status.HTTP_200_OK)

    def create(self, request):
        ser = OrganizationCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        org = OrganizationService.create(
            name=ser.validated_data["name"],
            code=ser.validated_data["code"],
            settings=_settings_json(ser.validated_data.get("settings")),
            provision_queues=ser.validated_data["provision_queues"],
        )
        return Response(OrganizationSerializer(org).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="set-settings")
    def set_settings(self, request, pk=None):
        ser = OrganizationSettingsUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        org = OrganizationService.update_settings(
            organization_id=self._pk(pk),
            settings=_settings_json(ser.validated_data["settings"]),
        )
        return Response(OrganizationSerializer(org).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="set-active")
    def set_active(self, request, pk=None):
        ser = OrganizationActiveUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        org = OrganizationService.set_active(
            organization_id=self._pk(pk),
            is_active=ser.validated_data["is_active"],
        )
        return Response(OrganizationSerializer(org).data, status=status.HTTP_200_OK)

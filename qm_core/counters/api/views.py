# qm_core/counters/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from qm_core.common.api.exceptions import NotFoundError
from qm_core.common.permissions import CounterPermission
from qm_core.counters.api.serializers import (
    CounterAssignSerializer,
    CounterCreateSerializer,
    CounterSelectSerializer,
    CounterSerializer,
    CounterUpdateSerializer,
)
from qm_core.counters.models import Counter
from qm_core.counters.selectors import get_counter_or_none, list_available_counters, list_counters
from qm_core.counters.services import CounterPatch, CounterService
from qm_core.iam.scope import require_organization
from qm_core.tokens.api.serializers import QueueStatusSerializer
from qm_core.tokens.selectors import get_queue_status


@extend_schema_view(
    list=extend_schema(tags=["Counters"], responses={200: CounterSerializer(many=True)}),
    retrieve=extend_schema(tags=["Counters"], responses={200: CounterSerializer}),
    create=extend_schema(tags=["Counters"], request=CounterCreateSerializer, responses={201: CounterSerializer}),
    partial_update=extend_schema(tags=["Counters"], request=CounterUpdateSerializer, responses={200: CounterSerializer}),
    destroy=extend_schema(tags=["Counters"], responses={204: None}),
    available=extend_schema(tags=["Counters"], responses={200: CounterSerializer(many=True)}),
    counter_status=extend_schema(tags=["Counters"], responses={200: QueueStatusSerializer}),
    activate=extend_schema(tags=["Counters"], request=None, responses={200: CounterSerializer}),
    deactivate=extend_schema(tags=["Counters"], request=None, responses={200: CounterSerializer}),
    assign=extend_schema(tags=["Counters"], request=CounterAssignSerializer, responses={200: CounterSerializer}),
    unassign=extend_schema(tags=["Counters"], request=None, responses={200: CounterSerializer}),
    select=extend_schema(tags=["Counters"], request=CounterSelectSerializer, responses={200: CounterSerializer}),
    release=extend_schema(tags=["Counters"], request=None, responses={200: CounterSerializer}),
)
class CounterViewSet(viewsets.ViewSet):
    """
    Counter administration (admin) + staff self-service (select/release).
    """

    permission_classes = [CounterPermission]

    serializer_class = CounterSerializer
    queryset = Counter.objects.none()

    def _service(self) -> CounterService:
        return CounterService()

    def _pk(self, pk) -> UUID:
        try:
            return UUID(str(pk))
        except ValueError:
            raise NotFoundError("Counter not found.")

    # ----------------------------
    # Reads
    # ----------------------------
    def list(self, request):
        organization_id = require_organization(request)
        qs = list_counters(organization_id=organization_id, params=request.query_params)
        return Response(CounterSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    def retrieve(self, request, pk=None):
        organization_id = require_organization(request)
        counter = get_counter_or_none(organization_id=organization_id, counter_id=self._pk(pk))
        if counter is None:
            raise NotFoundError("Counter not found.")
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"])
    def available(self, request):
        organization_id = require_organization(request)
        qs = list_available_counters(organization_id=organization_id)
        return Response(CounterSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="status")
    def counter_status(self, request, pk=None):
        organization_id = require_organization(request)
        snapshot = get_queue_status(organization_id=organization_id, counter_id=self._pk(pk))
        return Response(QueueStatusSerializer(snapshot).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Administration
    # ----------------------------
    def create(self, request):
        organization_id = require_organization(request)
        ser = CounterCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        counter = self._service().create(
            organization_id=organization_id,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CounterUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        counter = self._service().update(
            organization_id=organization_id,
            counter_id=self._pk(pk),
            patch=CounterPatch(**ser.validated_data),
            actor_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    def destroy(self, request, pk=None):
        organization_id = require_organization(request)
        self._service().delete(organization_id=organization_id, counter_id=self._pk(pk), actor_user_id=request.user.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def activate(self, request, pk=None):
        organization_id = require_organization(request)
        counter = self._service().activate(
            organization_id=organization_id,
            counter_id=self._pk(pk),
            actor_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def deactivate(self, request, pk=None):
        organization_id = require_organization(request)
        counter = self._service().deactivate(
            organization_id=organization_id,
            counter_id=self._pk(pk),
            actor_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CounterAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        counter = self._service().assign(
            organization_id=organization_id,
            counter_id=self._pk(pk),
            staff_user_id=ser.validated_data["staff_id"],
            actor_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def unassign(self, request, pk=None):
        organization_id = require_organization(request)
        counter = self._service().unassign(
            organization_id=organization_id,
            counter_id=self._pk(pk),
            actor_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Staff self-service
    # ----------------------------
    @action(detail=False, methods=["post"])
    def select(self, request):
        organization_id = require_organization(request)
        ser = CounterSelectSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        counter = self._service().select(
            organization_id=organization_id,
            counter_id=ser.validated_data["counter_id"],
            staff_user_id=request.user.id,
        )
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"])
    def release(self, request):
        organization_id = require_organization(request)
        counter = self._service().release(organization_id=organization_id, staff_user_id=request.user.id)
        return Response(CounterSerializer(counter).data, status=status.HTTP_200_OK)

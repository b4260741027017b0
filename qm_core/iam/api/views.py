# qm_core/iam/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from qm_core.common.api.exceptions import NotFoundError
from qm_core.common.api.pagination import paginate
from qm_core.common.permissions import ROLE_ADMIN, ROLE_SUPER_ADMIN, StaffPermission, user_has_role
from qm_core.iam.api.serializers import (
    PasswordResetSerializer,
    ServiceSessionSerializer,
    SessionEndSerializer,
    StaffCreateSerializer,
    StaffSerializer,
    StaffUpdateSerializer,
)
from qm_core.iam.models import UserProfile
from qm_core.iam.scope import require_organization
from qm_core.iam.selectors import (
    get_staff_or_none,
    get_staff_performance,
    list_sessions,
    list_staff,
    session_stats,
)
from qm_core.iam.services.sessions import ServiceSessionService
from qm_core.iam.services.staff import StaffService, StaffUpdate


@extend_schema_view(
    list=extend_schema(tags=["Staff"], responses={200: StaffSerializer(many=True)}),
    retrieve=extend_schema(tags=["Staff"], responses={200: StaffSerializer}),
    create=extend_schema(tags=["Staff"], request=StaffCreateSerializer, responses={201: StaffSerializer}),
    partial_update=extend_schema(tags=["Staff"], request=StaffUpdateSerializer, responses={200: StaffSerializer}),
    deactivate=extend_schema(tags=["Staff"], request=None, responses={200: StaffSerializer}),
    reactivate=extend_schema(tags=["Staff"], request=None, responses={200: StaffSerializer}),
    reset_password=extend_schema(tags=["Staff"], request=PasswordResetSerializer, responses={200: OpenApiTypes.OBJECT}),
    sessions=extend_schema(
        tags=["Staff"],
        parameters=[
            OpenApiParameter(name="staff_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False,
                             description="Admins only"),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="active", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: ServiceSessionSerializer(many=True)},
    ),
    start_session=extend_schema(tags=["Staff"], request=None, responses={201: ServiceSessionSerializer}),
    end_session=extend_schema(tags=["Staff"], request=SessionEndSerializer, responses={200: ServiceSessionSerializer}),
    performance=extend_schema(
        tags=["Staff"],
        parameters=[
            OpenApiParameter(name="staff_id", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False,
                             description="Admins only"),
            OpenApiParameter(name="period", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                             enum=["today", "week", "month", "year"]),
        ],
        responses={200: OpenApiTypes.OBJECT},
    ),
)
class StaffViewSet(viewsets.ViewSet):
    """
    Admin management of the organization's staff accounts, plus each
    member's own service sessions and performance.
    pk is the auth user id.
    """

    permission_classes = [StaffPermission]

    serializer_class = StaffSerializer
    queryset = UserProfile.objects.none()

    def _actor(self, request) -> dict:
        return {
            "actor_user_id": request.user.id,
            "actor_is_super_admin": user_has_role(request.user, ROLE_SUPER_ADMIN),
        }

    def _user_id(self, pk) -> int:
        try:
            return int(pk)
        except (TypeError, ValueError):
            raise NotFoundError("Staff member not found.")

    def list(self, request):
        organization_id = require_organization(request)
        qs = list_staff(organization_id=organization_id, params=request.query_params)
        return paginate(request, qs, StaffSerializer)

    def retrieve(self, request, pk=None):
        organization_id = require_organization(request)
        profile = get_staff_or_none(organization_id=organization_id, user_id=self._user_id(pk))
        if profile is None:
            raise NotFoundError("Staff member not found.")
        return Response(StaffSerializer(profile).data, status=status.HTTP_200_OK)

    def create(self, request):
        organization_id = require_organization(request)
        ser = StaffCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        profile = StaffService.create_staff(
            organization_id=organization_id,
            username=ser.validated_data["username"],
            password=ser.validated_data["password"],
            email=ser.validated_data.get("email", ""),
            role=ser.validated_data["role"],
            **self._actor(request),
        )
        return Response(StaffSerializer(profile).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        organization_id = require_organization(request)
        ser = StaffUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        profile = StaffService.update_staff(
            organization_id=organization_id,
            user_id=self._user_id(pk),
            patch=StaffUpdate(**ser.validated_data),
            **self._actor(request),
        )
        return Response(StaffSerializer(profile).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def deactivate(self, request, pk=None):
        organization_id = require_organization(request)
        profile = StaffService.deactivate(
            organization_id=organization_id,
            user_id=self._user_id(pk),
            **self._actor(request),
        )
        return Response(StaffSerializer(profile).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def reactivate(self, request, pk=None):
        organization_id = require_organization(request)
        profile = StaffService.reactivate(
            organization_id=organization_id,
            user_id=self._user_id(pk),
            **self._actor(request),
        )
        return Response(StaffSerializer(profile).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="reset-password")
    def reset_password(self, request, pk=None):
        organization_id = require_organization(request)
        ser = PasswordResetSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        StaffService.reset_password(
            organization_id=organization_id,
            user_id=self._user_id(pk),
            new_password=ser.validated_data["new_password"],
            **self._actor(request),
        )
        return Response({"detail": "Password reset."}, status=status.HTTP_200_OK)

    # -------------------------
    # Service sessions (own data; admins may pass ?staff_id)
    # -------------------------
    def _target_staff_id(self, request, organization_id) -> int | None:
        """
        Staff always get themselves. Admins get ?staff_id when given,
        otherwise None (the whole organization) for lists.
        """
        if not user_has_role(request.user, ROLE_ADMIN, ROLE_SUPER_ADMIN):
            return request.user.id
        raw = request.query_params.get("staff_id")
        if not raw:
            return None
        user_id = self._user_id(raw)
        if get_staff_or_none(organization_id=organization_id, user_id=user_id) is None:
            raise NotFoundError("Staff member not found.")
        return user_id

    @action(detail=False, methods=["get"], url_path="sessions")
    def sessions(self, request):
        organization_id = require_organization(request)
        qs = list_sessions(
            organization_id=organization_id,
            staff_user_id=self._target_staff_id(request, organization_id),
            params=request.query_params,
        )
        response = paginate(request, qs, ServiceSessionSerializer)
        response.data["stats"] = session_stats(qs)
        return response

    @action(detail=False, methods=["post"], url_path="sessions/start")
    def start_session(self, request):
        organization_id = require_organization(request)
        session = ServiceSessionService.start(organization_id=organization_id, staff_user_id=request.user.id)
        return Response(ServiceSessionSerializer(session).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="sessions/end")
    def end_session(self, request):
        organization_id = require_organization(request)
        ser = SessionEndSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        session = ServiceSessionService.end(
            organization_id=organization_id,
            staff_user_id=request.user.id,
            notes=ser.validated_data.get("notes"),
        )
        return Response(ServiceSessionSerializer(session).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"])
    def performance(self, request):
        organization_id = require_organization(request)
        staff_user_id = self._target_staff_id(request, organization_id) or request.user.id
        data = get_staff_performance(
            organization_id=organization_id,
            staff_user_id=staff_user_id,
            period=request.query_params.get("period") or "today",
        )
        return Response(data, status=status.HTTP_200_OK)

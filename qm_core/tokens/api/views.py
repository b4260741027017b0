# qm_core/tokens/api/views.py
from __future__ import annotations

from uuid import UUID

from django.conf import settings
from drf_spectacular.utils import extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from qm_core.common.api.exceptions import NotFoundError
from qm_core.common.api.pagination import paginate
from qm_core.common.throttling import PublicScopedRateThrottle
from qm_core.iam.scope import require_organization
from qm_core.organizations.selectors import get_by_code_or_none
from qm_core.tokens.api.serializers import (
    BulkDeleteSerializer,
    BulkResultSerializer,
    BulkUpdateSerializer,
    CancelSerializer,
    CompleteServiceSerializer,
    CounterTargetSerializer,
    NotesSerializer,
    PublicTokenCreateSerializer,
    PublicTokenIssueSerializer,
    TokenCreateSerializer,
    TokenIssueSerializer,
    TokenPositionSerializer,
    TokenSerializer,
    TokenUpdateSerializer,
)
from qm_core.tokens.models import Token
from qm_core.tokens.permissions import TokenPermission
from qm_core.tokens.selectors import get_position, get_token, list_tokens
from qm_core.tokens.services import TokenPatch, TokenService


def _patch_from(validated: dict) -> TokenPatch:
    clear_counter = "counter_id" in validated and validated["counter_id"] is None
    return TokenPatch(
        priority=validated.get("priority"),
        counter_id=validated.get("counter_id"),
        clear_counter=clear_counter,
        notes=validated.get("notes"),
        metadata=validated.get("metadata"),
    )


@extend_schema_view(
    list=extend_schema(tags=["Tokens"], responses={200: TokenSerializer(many=True)}),
    retrieve=extend_schema(tags=["Tokens"], responses={200: TokenSerializer}),
    create=extend_schema(tags=["Tokens"], request=TokenCreateSerializer, responses={201: TokenIssueSerializer}),
    partial_update=extend_schema(tags=["Tokens"], request=TokenUpdateSerializer, responses={200: TokenSerializer}),
    public=extend_schema(tags=["Public"], request=PublicTokenCreateSerializer, responses={201: PublicTokenIssueSerializer}),
    position=extend_schema(tags=["Public"], responses={200: TokenPositionSerializer}),
    start_serving=extend_schema(tags=["Tokens"], request=None, responses={200: TokenSerializer}),
    complete=extend_schema(tags=["Tokens"], request=CompleteServiceSerializer, responses={200: TokenSerializer}),
    no_show=extend_schema(tags=["Tokens"], request=NotesSerializer, responses={200: TokenSerializer}),
    recall=extend_schema(tags=["Tokens"], request=CounterTargetSerializer, responses={200: TokenSerializer}),
    announce=extend_schema(tags=["Tokens"], request=CounterTargetSerializer, responses={200: TokenSerializer}),
    cancel=extend_schema(tags=["Tokens"], request=CancelSerializer, responses={200: TokenSerializer}),
    bulk_update=extend_schema(tags=["Tokens"], request=BulkUpdateSerializer, responses={200: BulkResultSerializer}),
    bulk_delete=extend_schema(tags=["Tokens"], request=BulkDeleteSerializer, responses={200: BulkResultSerializer}),
)
class TokenViewSet(viewsets.ViewSet):
    """
    Thin API layer over the lifecycle engine:
    - scope + input validation here
    - reads via selectors, writes via TokenService
    """

    permission_classes = [TokenPermission]
    throttle_scope = None

    serializer_class = TokenSerializer
    queryset = Token.objects.none()

    def _service(self) -> TokenService:
        return TokenService()

    def _pk(self, pk) -> UUID:
        try:
            return UUID(str(pk))
        except ValueError:
            raise NotFoundError("Token not found.")

    # ----------------------------
    # Reads
    # ----------------------------
    def list(self, request):
        organization_id = require_organization(request)
        qs = list_tokens(organization_id=organization_id, params=request.query_params)
        return paginate(request, qs, TokenSerializer)

    def retrieve(self, request, pk=None):
        organization_id = require_organization(request)
        token = get_token(organization_id=organization_id, token_id=self._pk(pk))
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Issue
    # ----------------------------
    def create(self, request):
        organization_id = require_organization(request)
        ser = TokenCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        issue = self._service().create_token(
            organization_id=organization_id,
            issued_by_id=request.user.id,
            **ser.validated_data,
        )
        return Response(TokenIssueSerializer(issue).data, status=status.HTTP_201_CREATED)

    @action(
        detail=False,
        methods=["post"],
        permission_classes=[AllowAny],
        authentication_classes=[],
        throttle_classes=[PublicScopedRateThrottle],
        throttle_scope="token_create",
    )
    def public(self, request):
        ser = PublicTokenCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        code = ser.validated_data["organization"] or getattr(settings, "QM_DEFAULT_ORGANIZATION_CODE", "")
        org = get_by_code_or_none(code=code) if code else None
        if org is None or not org.is_active:
            raise NotFoundError("Organization not found.")

        issue = self._service().create_token(
            organization_id=org.id,
            customer_type=ser.validated_data["customer_type"],
            metadata=ser.validated_data["metadata"],
        )
        return Response(PublicTokenIssueSerializer(issue).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["get"],
        permission_classes=[AllowAny],
        authentication_classes=[],
        throttle_classes=[PublicScopedRateThrottle],
        throttle_scope="queue_status",
    )
    def position(self, request, pk=None):
        token = Token.objects.select_related("counter").filter(id=self._pk(pk)).first()
        if token is None:
            raise NotFoundError("Token not found.")
        return Response(TokenPositionSerializer(get_position(token)).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Administration
    # ----------------------------
    def partial_update(self, request, pk=None):
        organization_id = require_organization(request)
        ser = TokenUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().update_token(
            organization_id=organization_id,
            token_id=self._pk(pk),
            patch=_patch_from(ser.validated_data),
            actor_user_id=request.user.id,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="bulk-update")
    def bulk_update(self, request):
        organization_id = require_organization(request)
        ser = BulkUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        tokens = self._service().bulk_update(
            organization_id=organization_id,
            token_ids=ser.validated_data["token_ids"],
            patch=_patch_from(ser.validated_data["patch"]),
            actor_user_id=request.user.id,
        )
        return Response(BulkResultSerializer({"count": len(tokens), "tokens": tokens}).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="bulk-delete")
    def bulk_delete(self, request):
        organization_id = require_organization(request)
        ser = BulkDeleteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        tokens = self._service().bulk_cancel(
            organization_id=organization_id,
            token_ids=ser.validated_data["token_ids"],
            reason=ser.validated_data.get("reason") or None,
            actor_user_id=request.user.id,
        )
        return Response(BulkResultSerializer({"count": len(tokens), "tokens": tokens}).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Lifecycle actions
    # ----------------------------
    @action(detail=True, methods=["post"], url_path="start-serving")
    def start_serving(self, request, pk=None):
        organization_id = require_organization(request)
        token = self._service().start_serving(
            organization_id=organization_id,
            token_id=self._pk(pk),
            staff_user_id=request.user.id,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CompleteServiceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().complete_service(
            organization_id=organization_id,
            token_id=self._pk(pk),
            staff_user_id=request.user.id,
            service_duration=ser.validated_data.get("service_duration"),
            rating=ser.validated_data.get("rating"),
            notes=ser.validated_data.get("notes") or None,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="no-show")
    def no_show(self, request, pk=None):
        organization_id = require_organization(request)
        ser = NotesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().mark_no_show(
            organization_id=organization_id,
            token_id=self._pk(pk),
            staff_user_id=request.user.id,
            notes=ser.validated_data.get("notes") or None,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def recall(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CounterTargetSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().recall(
            organization_id=organization_id,
            token_id=self._pk(pk),
            counter_id=ser.validated_data["counter_id"],
            staff_user_id=request.user.id,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def announce(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CounterTargetSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().repeat_announce(
            organization_id=organization_id,
            token_id=self._pk(pk),
            counter_id=ser.validated_data["counter_id"],
            staff_user_id=request.user.id,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        organization_id = require_organization(request)
        ser = CancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        token = self._service().cancel(
            organization_id=organization_id,
            token_id=self._pk(pk),
            reason=ser.validated_data.get("reason") or None,
            staff_user_id=request.user.id,
        )
        return Response(TokenSerializer(token).data, status=status.HTTP_200_OK)

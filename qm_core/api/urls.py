# qm_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from qm_core.audit.api.views import SystemLogViewSet
from qm_core.counters.api.views import CounterViewSet
from qm_core.iam.api.auth import ChangePasswordView, LoginView, LogoutView, RefreshView
from qm_core.iam.api.me import MeView
from qm_core.iam.api.views import StaffViewSet
from qm_core.organizations.api.views import OrganizationViewSet
from qm_core.queues.api.views import QueueViewSet
from qm_core.tokens.api.views import TokenViewSet

router = DefaultRouter()

router.register(r"tokens", TokenViewSet, basename="tokens")
router.register(r"queue", QueueViewSet, basename="queue")
router.register(r"counters", CounterViewSet, basename="counters")
router.register(r"staff", StaffViewSet, basename="staff")
router.register(r"organizations", OrganizationViewSet, basename="organizations")
router.register(r"audit/logs", SystemLogViewSet, basename="audit-logs")

urlpatterns = [
    # Auth + /me
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/change-password/", ChangePasswordView.as_view(), name="change-password"),
    path("me/", MeView.as_view(), name="me"),

    # Router URLs last (so explicit paths win if ever overlapping)
    *router.urls,
]

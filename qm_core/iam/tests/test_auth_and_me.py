import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from qm_core.audit.models import SystemLog
from qm_core.conftest import scope_headers

pytestmark = pytest.mark.django_db


def test_me_requires_auth():
    res = APIClient().get("/api/v1/me/")
    assert res.status_code in (401, 403)


def test_login_sets_cookies(staff_user, settings):
    res = APIClient().post("/api/v1/auth/login/", {"username": "staff1", "password": "pass12345"}, format="json")

    assert res.status_code == 200
    assert settings.SIMPLE_JWT["AUTH_COOKIE"] in res.cookies
    assert settings.SIMPLE_JWT["AUTH_COOKIE_REFRESH"] in res.cookies


def test_login_with_wrong_password(staff_user):
    res = APIClient().post("/api/v1/auth/login/", {"username": "staff1", "password": "nope"}, format="json")
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "authentication_failed"


def test_cookie_authenticates_following_requests(staff_user):
    client = APIClient()
    client.post("/api/v1/auth/login/", {"username": "staff1", "password": "pass12345"}, format="json")

    res = client.get("/api/v1/me/")
    assert res.status_code == 200


def test_refresh_from_cookie(staff_user):
    client = APIClient()
    client.post("/api/v1/auth/login/", {"username": "staff1", "password": "pass12345"}, format="json")

    res = client.post("/api/v1/auth/refresh/", {}, format="json")
    assert res.status_code == 200
    assert "access" in res.json()


def test_me_returns_role_and_organization(staff_client, staff_user, organization):
    res = staff_client.get("/api/v1/me/")

    assert res.status_code == 200
    body = res.json()
    assert body["user"]["id"] == staff_user.id
    assert body["role"] == "staff"
    assert body["roles"] == ["staff"]
    assert body["organization"]["code"] == organization.code
    assert body["active_organization_id"] == str(organization.id)


def test_bearer_token_with_foreign_scope_is_forbidden(staff_user, other_organization):
    """
    Real JWT so CookieOrHeaderJWTAuthentication runs and enforces scope.
    """
    client = APIClient()
    access = str(RefreshToken.for_user(staff_user).access_token)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

    res = client.get("/api/v1/me/", **scope_headers(other_organization))
    assert res.status_code == 403


def test_bearer_token_with_malformed_scope(staff_user):
    client = APIClient()
    access = str(RefreshToken.for_user(staff_user).access_token)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

    res = client.get("/api/v1/me/", HTTP_X_ORGANIZATION_ID="not-a-uuid")
    assert res.status_code == 400


def test_bearer_header_wins_over_cookie(staff_user, admin_user):
    client = APIClient()
    client.post("/api/v1/auth/login/", {"username": "staff1", "password": "pass12345"}, format="json")
    access = str(RefreshToken.for_user(admin_user).access_token)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

    res = client.get("/api/v1/me/")
    assert res.status_code == 200
    assert res.json()["user"]["id"] == admin_user.id


def test_logout_clears_cookies(staff_client, settings):
    res = staff_client.post("/api/v1/auth/logout/", format="json")
    assert res.status_code == 200
    assert res.cookies[settings.SIMPLE_JWT["AUTH_COOKIE"]].value == ""


def test_change_password(staff_client, staff_user):
    res = staff_client.post(
        "/api/v1/auth/change-password/",
        {"current_password": "pass12345", "new_password": "Better-pass-2024", "confirm_password": "Better-pass-2024"},
        format="json",
    )

    assert res.status_code == 200
    staff_user.refresh_from_db()
    assert staff_user.check_password("Better-pass-2024")
    assert SystemLog.objects.filter(action="password_changed", entity_id=str(staff_user.id)).exists()


def test_change_password_with_wrong_current_password(staff_client, staff_user):
    res = staff_client.post(
        "/api/v1/auth/change-password/",
        {"current_password": "nope", "new_password": "Better-pass-2024", "confirm_password": "Better-pass-2024"},
        format="json",
    )

    assert res.status_code == 401
    staff_user.refresh_from_db()
    assert staff_user.check_password("pass12345")


@pytest.mark.parametrize(
    "new_password, confirm_password",
    [
        ("Better-pass-2024", "Different-2024"),
        ("pass12345", "pass12345"),
        ("password", "password"),
    ],
)
def test_change_password_rejections(staff_client, staff_user, new_password, confirm_password):
    res = staff_client.post(
        "/api/v1/auth/change-password/",
        {"current_password": "pass12345", "new_password": new_password, "confirm_password": confirm_password},
        format="json",
    )

    assert res.status_code == 400
    assert not SystemLog.objects.filter(action="password_changed").exists()

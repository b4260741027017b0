import pytest
from django.core.management import call_command
from django.contrib.auth.models import Group

from qm_core.audit.models import SystemLog
from qm_core.conftest import client_for
from qm_core.iam.models import UserProfile

pytestmark = pytest.mark.django_db


def test_admin_creates_staff(api_client, organization):
    res = api_client.post(
        "/api/v1/staff/",
        {"username": "desk-7", "password": "Str0ng-pass-77", "role": "staff"},
        format="json",
    )

    assert res.status_code == 201
    profile = UserProfile.objects.get(user__username="desk-7")
    assert profile.organization_id == organization.id
    assert profile.user.groups.filter(name="staff").exists()
    assert SystemLog.objects.filter(action="user_created", entity_id=str(profile.user_id)).exists()


def test_admin_cannot_grant_super_admin(api_client):
    res = api_client.post(
        "/api/v1/staff/",
        {"username": "boss", "password": "Str0ng-pass-77", "role": "super_admin"},
        format="json",
    )
    assert res.status_code == 403


def test_staff_cannot_manage_staff(staff_client):
    assert staff_client.get("/api/v1/staff/").status_code == 403


def test_list_and_filter_by_role(api_client, staff_user, admin_user):
    res = api_client.get("/api/v1/staff/", {"role": "staff"})

    assert res.status_code == 200
    assert [row["username"] for row in res.json()["results"]] == ["staff1"]


def test_update_role(api_client, staff_user):
    res = api_client.patch(f"/api/v1/staff/{staff_user.id}/", {"role": "admin"}, format="json")

    assert res.status_code == 200
    assert res.json()["role"] == "admin"
    log = SystemLog.objects.get(action="user_updated")
    assert log.details["role"] == {"old": "staff", "new": "admin"}


def test_cannot_deactivate_self(api_client, admin_user):
    res = api_client.post(f"/api/v1/staff/{admin_user.id}/deactivate/", format="json")
    assert res.status_code == 400


def test_staff_of_other_organization_is_not_found(api_client, other_organization):
    from qm_core.conftest import make_member

    outsider = make_member("outsider", other_organization)
    res = api_client.get(f"/api/v1/staff/{outsider.id}/")
    assert res.status_code == 404


def test_deactivated_staff_loses_access(admin_user, staff_user):
    client_for(admin_user).post(f"/api/v1/staff/{staff_user.id}/deactivate/", format="json")
    staff_user.refresh_from_db()

    res = client_for(staff_user).get("/api/v1/tokens/")
    assert res.status_code == 403


def test_ensure_roles_command(db):
    call_command("ensure_roles")
    assert set(Group.objects.values_list("name", flat=True)) >= {"staff", "admin", "super_admin"}


def test_reactivate_restores_access(api_client, staff_user):
    api_client.post(f"/api/v1/staff/{staff_user.id}/deactivate/", format="json")

    res = api_client.post(f"/api/v1/staff/{staff_user.id}/reactivate/", format="json")

    assert res.status_code == 200
    assert res.json()["is_active"] is True
    assert SystemLog.objects.filter(action="user_reactivated", entity_id=str(staff_user.id)).exists()
    staff_user.refresh_from_db()
    assert client_for(staff_user).get("/api/v1/tokens/").status_code == 200


def test_reactivating_active_member_writes_nothing(api_client, staff_user):
    res = api_client.post(f"/api/v1/staff/{staff_user.id}/reactivate/", format="json")

    assert res.status_code == 200
    assert not SystemLog.objects.filter(action="user_reactivated").exists()


def test_admin_resets_password(api_client, staff_user):
    res = api_client.post(
        f"/api/v1/staff/{staff_user.id}/reset-password/",
        {"new_password": "Fresh-start-2024"},
        format="json",
    )

    assert res.status_code == 200
    staff_user.refresh_from_db()
    assert staff_user.check_password("Fresh-start-2024")
    log = SystemLog.objects.get(action="password_reset", entity_id=str(staff_user.id))
    assert "Fresh-start-2024" not in str(log.details)


def test_reset_password_runs_validators(api_client, staff_user):
    res = api_client.post(
        f"/api/v1/staff/{staff_user.id}/reset-password/",
        {"new_password": "12345678"},
        format="json",
    )

    assert res.status_code == 400
    staff_user.refresh_from_db()
    assert staff_user.check_password("pass12345")


def test_staff_cannot_reset_passwords(staff_client, admin_user):
    res = staff_client.post(
        f"/api/v1/staff/{admin_user.id}/reset-password/",
        {"new_password": "Fresh-start-2024"},
        format="json",
    )
    assert res.status_code == 403
    assert staff_client.post(f"/api/v1/staff/{admin_user.id}/reactivate/", format="json").status_code == 403

import pytest
from django.core.management import call_command

from qm_core.conftest import client_for
from qm_core.organizations.models import Organization
from qm_core.queues.models import QueueSetting

pytestmark = pytest.mark.django_db


def test_super_admin_creates_organization(super_admin):
    res = client_for(super_admin).post(
        "/api/v1/organizations/",
        {
            "name": "Airport Kiosk",
            "code": "airport",
            "settings": {
                "timezone": "Europe/Berlin",
                "operating_hours": {"mon": {"open": "08:00", "close": "18:00"}},
                "max_tokens_per_day": 400,
            },
        },
        format="json",
    )

    assert res.status_code == 201
    org = Organization.objects.get(code="airport")
    assert org.settings["operating_hours"]["mon"] == {"open": "08:00", "close": "18:00"}
    assert QueueSetting.objects.filter(organization_id=org.id).count() == 3


def test_unknown_setting_keys_are_rejected(super_admin):
    res = client_for(super_admin).post(
        "/api/v1/organizations/",
        {"name": "X", "code": "x", "settings": {"colour": "red"}},
        format="json",
    )
    assert res.status_code == 400


def test_create_without_queues(super_admin):
    res = client_for(super_admin).post(
        "/api/v1/organizations/",
        {"name": "Bare", "code": "bare", "provision_queues": False},
        format="json",
    )
    assert res.status_code == 201
    assert not QueueSetting.objects.filter(organization_id=res.json()["id"]).exists()


def test_duplicate_code(super_admin, organization):
    res = client_for(super_admin).post("/api/v1/organizations/", {"name": "Again", "code": "main"}, format="json")
    assert res.status_code == 400


def test_admin_cannot_manage_organizations(api_client):
    assert api_client.get("/api/v1/organizations/").status_code == 403


def test_set_active_and_settings(super_admin, organization):
    client = client_for(super_admin)

    res = client.post(f"/api/v1/organizations/{organization.id}/set-active/", {"is_active": False}, format="json")
    assert res.status_code == 200
    assert res.json()["is_active"] is False

    res = client.post(
        f"/api/v1/organizations/{organization.id}/set-settings/",
        {"settings": {"display_message": "Please wait to be called"}},
        format="json",
    )
    assert res.status_code == 200
    organization.refresh_from_db()
    assert organization.settings == {"display_message": "Please wait to be called"}


def test_closing_hours_must_follow_opening(super_admin, organization):
    res = client_for(super_admin).post(
        f"/api/v1/organizations/{organization.id}/set-settings/",
        {"settings": {"operating_hours": {"tue": {"open": "18:00", "close": "08:00"}}}},
        format="json",
    )
    assert res.status_code == 400


def test_ensure_queue_settings_command(db):
    org = Organization.objects.create(name="Legacy", code="legacy")

    call_command("ensure_queue_settings", "--organization", "legacy")

    assert QueueSetting.objects.filter(organization_id=org.id).count() == 3

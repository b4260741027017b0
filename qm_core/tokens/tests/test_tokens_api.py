import uuid

import pytest
from rest_framework.test import APIClient

from qm_core.conftest import client_for, make_member, scope_headers
from qm_core.iam.models import UserRole
from qm_core.tokens.models import Token, TokenStatus

pytestmark = pytest.mark.django_db


def test_staff_issues_token(staff_client):
    res = staff_client.post("/api/v1/tokens/", {"customer_type": "retail", "priority": 2}, format="json")

    assert res.status_code == 201
    body = res.json()
    assert body["token"]["number"] == "R001"
    assert body["token"]["status"] == "waiting"
    assert body["position"] == 1
    assert body["estimated_wait_time"] == 8


def test_create_rejects_unknown_customer_type(staff_client):
    res = staff_client.post("/api/v1/tokens/", {"customer_type": "walk-in"}, format="json")
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


def test_public_issue_without_login(organization):
    res = APIClient().post(
        "/api/v1/tokens/public/",
        {"organization": organization.code, "customer_type": "instant"},
        format="json",
    )

    assert res.status_code == 201
    body = res.json()
    assert body["token"]["number"] == "I001"
    assert "metadata" not in body["token"]
    assert Token.objects.get(id=body["token"]["id"]).issued_by_id is None


def test_public_issue_uses_default_organization(organization, settings):
    settings.QM_DEFAULT_ORGANIZATION_CODE = organization.code
    res = APIClient().post("/api/v1/tokens/public/", {"customer_type": "browser"}, format="json")
    assert res.status_code == 201
    assert res.json()["token"]["number"] == "B001"


def test_public_issue_unknown_organization(db):
    res = APIClient().post(
        "/api/v1/tokens/public/",
        {"organization": "nowhere", "customer_type": "instant"},
        format="json",
    )
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_public_issue_for_unconfigured_queue(organization):
    from qm_core.queues.models import QueueSetting

    QueueSetting.objects.filter(organization_id=organization.id, customer_type="retail").delete()
    res = APIClient().post(
        "/api/v1/tokens/public/",
        {"organization": organization.code, "customer_type": "retail"},
        format="json",
    )
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "configuration_error"


def test_public_position(issue):
    issue("instant")
    second = issue("instant").token

    res = APIClient().get(f"/api/v1/tokens/{second.id}/position/")

    assert res.status_code == 200
    assert res.json()["position"] == 2
    assert res.json()["estimated_wait_time"] == 6


def test_list_filters_by_status(staff_client, organization, counter, token_service, issue):
    issue("instant")
    issue("instant")
    token_service.call_next(organization_id=organization.id, counter_id=counter.id)

    res = staff_client.get("/api/v1/tokens/", {"status": "called"})

    assert res.status_code == 200
    body = res.json()
    assert body["count"] == 1
    assert body["results"][0]["status"] == "called"


def test_list_rejects_bad_filter(staff_client):
    res = staff_client.get("/api/v1/tokens/", {"status": "lost"})
    assert res.status_code == 400


def test_list_is_scoped_to_organization(staff_client, other_organization, token_service):
    token_service.create_token(organization_id=other_organization.id, customer_type="instant")
    res = staff_client.get("/api/v1/tokens/")
    assert res.json()["count"] == 0


def test_retrieve_foreign_token_is_not_found(staff_client, other_organization, token_service):
    foreign = token_service.create_token(organization_id=other_organization.id, customer_type="instant").token
    res = staff_client.get(f"/api/v1/tokens/{foreign.id}/")
    assert res.status_code == 404

    res = staff_client.get("/api/v1/tokens/not-a-uuid/")
    assert res.status_code == 404


def test_lifecycle_over_http(staff_client, counter, issue):
    token = issue("instant").token

    res = staff_client.post("/api/v1/queue/call-next/", {"counter_id": str(counter.id)}, format="json")
    assert res.status_code == 200
    assert res.json()["token"]["id"] == str(token.id)

    res = staff_client.post(f"/api/v1/tokens/{token.id}/start-serving/", format="json")
    assert res.json()["status"] == "serving"

    res = staff_client.post(f"/api/v1/tokens/{token.id}/complete/", {"rating": 4}, format="json")
    assert res.status_code == 200
    assert res.json()["status"] == "completed"


def test_complete_waiting_token_returns_conflict_envelope(staff_client, issue):
    token = issue("instant").token

    res = staff_client.post(f"/api/v1/tokens/{token.id}/complete/", {}, format="json")

    assert res.status_code == 409
    error = res.json()["error"]
    assert error["code"] == "conflict"
    assert error["request_id"]
    assert Token.objects.get(id=token.id).status == TokenStatus.WAITING


def test_call_next_on_empty_queue(staff_client, counter):
    res = staff_client.post("/api/v1/queue/call-next/", {"counter_id": str(counter.id)}, format="json")
    assert res.status_code == 200
    assert res.json() == {"token": None, "message": "No tokens waiting."}


def test_no_show_and_recall_over_http(staff_client, organization, counter, counter2, token_service, issue):
    token = issue("retail").token
    token_service.call_next(organization_id=organization.id, counter_id=counter.id)

    res = staff_client.post(f"/api/v1/tokens/{token.id}/no-show/", {}, format="json")
    assert res.json()["status"] == "no_show"

    res = staff_client.post(f"/api/v1/tokens/{token.id}/recall/", {"counter_id": str(counter2.id)}, format="json")
    assert res.json()["status"] == "called"
    assert res.json()["counter_id"] == str(counter2.id)


def test_patch_cannot_change_status(api_client, issue):
    token = issue("instant").token
    res = api_client.patch(f"/api/v1/tokens/{token.id}/", {"status": "completed"}, format="json")
    assert res.status_code == 400


def test_patch_priority(api_client, issue):
    token = issue("instant").token
    res = api_client.patch(f"/api/v1/tokens/{token.id}/", {"priority": 6}, format="json")
    assert res.status_code == 200
    assert res.json()["priority"] == 6


def test_bulk_endpoints_are_admin_only(staff_client, api_client, issue):
    ids = [str(issue("instant").token.id) for _ in range(2)]

    res = staff_client.post("/api/v1/tokens/bulk-delete/", {"token_ids": ids}, format="json")
    assert res.status_code == 403

    res = api_client.post("/api/v1/tokens/bulk-update/", {"token_ids": ids, "patch": {"priority": 3}}, format="json")
    assert res.status_code == 200
    assert res.json()["count"] == 2

    res = api_client.post("/api/v1/tokens/bulk-delete/", {"token_ids": ids, "reason": "closed"}, format="json")
    assert res.status_code == 200
    assert {t["status"] for t in res.json()["tokens"]} == {"cancelled"}


def test_bulk_update_rejects_status_patch(api_client, issue):
    token = issue("instant").token
    res = api_client.post(
        "/api/v1/tokens/bulk-update/",
        {"token_ids": [str(token.id)], "patch": {"status": "completed"}},
        format="json",
    )
    assert res.status_code == 400


def test_bulk_update_with_foreign_id_is_rejected(api_client, other_organization, token_service, issue):
    own = issue("instant").token
    foreign = token_service.create_token(organization_id=other_organization.id, customer_type="instant").token

    res = api_client.post(
        "/api/v1/tokens/bulk-update/",
        {"token_ids": [str(own.id), str(foreign.id)], "patch": {"priority": 9}},
        format="json",
    )

    assert res.status_code == 400
    own.refresh_from_db()
    assert own.priority == 0


def test_anonymous_cannot_list_tokens(organization):
    res = APIClient().get("/api/v1/tokens/")
    assert res.status_code in (401, 403)


def test_scope_header_for_foreign_organization_is_forbidden(staff_user, other_organization):
    res = client_for(staff_user).get("/api/v1/tokens/", **scope_headers(other_organization))
    assert res.status_code == 403


def test_super_admin_can_act_on_any_organization(other_organization, organization, token_service):
    token_service.create_token(organization_id=other_organization.id, customer_type="instant")
    root = make_member("root2", organization, role=UserRole.SUPER_ADMIN, is_superuser=True)

    res = client_for(root).get("/api/v1/tokens/", **scope_headers(other_organization))

    assert res.status_code == 200
    assert res.json()["count"] == 1


def test_unversioned_alias(staff_client):
    res = staff_client.get("/api/tokens/")
    assert res.status_code == 200


def test_position_of_unknown_token(db):
    res = APIClient().get(f"/api/v1/tokens/{uuid.uuid4()}/position/")
    assert res.status_code == 404

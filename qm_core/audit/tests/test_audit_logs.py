import pytest

from qm_core.audit.models import SystemLog
from qm_core.common.api.exceptions import ConflictError
from qm_core.conftest import client_for

pytestmark = pytest.mark.django_db


def test_admin_reads_own_organization_logs(api_client, organization, other_organization, counter, token_service, issue):
    issue("instant")
    token_service.create_token(organization_id=other_organization.id, customer_type="instant")

    res = api_client.get("/api/v1/audit/logs/")

    assert res.status_code == 200
    rows = res.json()
    assert [r["action"] for r in rows] == ["token_created"]
    assert rows[0]["organization_id"] == str(organization.id)


def test_filter_by_action_and_entity(api_client, organization, counter, token_service, issue):
    token = issue("instant").token
    token_service.call_next(organization_id=organization.id, counter_id=counter.id)

    res = api_client.get("/api/v1/audit/logs/", {"action": "token_called"})
    assert [r["entity_id"] for r in res.json()] == [str(token.id)]

    res = api_client.get("/api/v1/audit/logs/", {"entity_type": "Token", "entity_id": str(token.id)})
    assert {r["action"] for r in res.json()} == {"token_created", "token_called"}


def test_bad_actor_filter(api_client):
    res = api_client.get("/api/v1/audit/logs/", {"actor_user_id": "abc"})
    assert res.status_code == 400


def test_staff_cannot_read_logs(staff_user):
    assert client_for(staff_user).get("/api/v1/audit/logs/").status_code == 403


def test_failed_transition_writes_no_log(organization, token_service, issue):
    token = issue("instant").token
    before = SystemLog.objects.count()

    with pytest.raises(ConflictError):
        token_service.start_serving(organization_id=organization.id, token_id=token.id)

    assert SystemLog.objects.count() == before

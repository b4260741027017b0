import pytest

from qm_core.audit.models import SystemLog
from qm_core.common.api.exceptions import ConflictError, NotFoundError
from qm_core.conftest import client_for, make_member
from qm_core.counters.models import Counter
from qm_core.counters.services import CounterPatch, CounterService
from qm_core.notifications.hub import RecordingNotifier
from qm_core.tokens.models import Token, TokenStatus

pytestmark = pytest.mark.django_db


@pytest.fixture
def counter_service():
    return CounterService(notifier=RecordingNotifier())


def test_create_and_rename(organization, admin_user, counter_service):
    counter = counter_service.create(organization_id=organization.id, name=" Window A ", actor_user_id=admin_user.id)
    assert counter.name == "Window A"

    renamed = counter_service.update(
        organization_id=organization.id,
        counter_id=counter.id,
        patch=CounterPatch(name="Window B"),
        actor_user_id=admin_user.id,
    )
    assert renamed.name == "Window B"
    assert list(
        SystemLog.objects.filter(entity_type="Counter").order_by("occurred_at").values_list("action", flat=True)
    ) == ["counter_created", "counter_updated"]
    assert counter_service.notifier.events == ["counter:updated", "counter:updated"]


def test_duplicate_name_is_a_conflict(organization, counter, counter_service):
    with pytest.raises(ConflictError):
        counter_service.create(organization_id=organization.id, name="Counter 1")


def test_same_name_in_another_organization_is_fine(other_organization, counter, counter_service):
    other = counter_service.create(organization_id=other_organization.id, name="Counter 1")
    assert other.organization_id == other_organization.id


def test_assign_and_unassign(organization, counter, staff_user, counter_service):
    assigned = counter_service.assign(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)
    assert assigned.assigned_staff_id == staff_user.id

    released = counter_service.unassign(organization_id=organization.id, counter_id=counter.id)
    assert released.assigned_staff_id is None


def test_staff_holds_one_counter(organization, counter, counter2, staff_user, counter_service):
    counter_service.assign(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)

    with pytest.raises(ConflictError):
        counter_service.assign(organization_id=organization.id, counter_id=counter2.id, staff_user_id=staff_user.id)


def test_assign_foreign_user_is_not_found(organization, other_organization, counter, counter_service):
    outsider = make_member("outsider", other_organization)
    with pytest.raises(NotFoundError):
        counter_service.assign(organization_id=organization.id, counter_id=counter.id, staff_user_id=outsider.id)


def test_select_and_release(organization, counter, staff_user, counter_service):
    selected = counter_service.select(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)
    assert selected.assigned_staff_id == staff_user.id

    other = make_member("staff2", organization)
    with pytest.raises(ConflictError):
        counter_service.select(organization_id=organization.id, counter_id=counter.id, staff_user_id=other.id)

    released = counter_service.release(organization_id=organization.id, staff_user_id=staff_user.id)
    assert released.assigned_staff_id is None

    with pytest.raises(NotFoundError):
        counter_service.release(organization_id=organization.id, staff_user_id=staff_user.id)


def test_cannot_deactivate_counter_mid_service(organization, counter, counter_service, issue):
    token = issue("instant").token
    Token.objects.filter(id=token.id).update(status=TokenStatus.SERVING, counter_id=counter.id)

    with pytest.raises(ConflictError):
        counter_service.deactivate(organization_id=organization.id, counter_id=counter.id)

    Token.objects.filter(id=token.id).update(status=TokenStatus.COMPLETED)
    assert counter_service.deactivate(organization_id=organization.id, counter_id=counter.id).is_active is False


def test_deactivate_returns_routed_waiting_tokens_to_shared_queue(
    organization, counter, counter2, counter_service, token_service, issue
):
    routed = issue("retail", counter_id=counter.id).token

    counter_service.deactivate(organization_id=organization.id, counter_id=counter.id)

    routed.refresh_from_db()
    assert routed.counter_id is None
    assert routed.status == TokenStatus.WAITING
    log = SystemLog.objects.get(action="counter_deactivated", entity_id=str(counter.id))
    assert log.details["released_token_ids"] == [str(routed.id)]

    called = token_service.call_next(organization_id=organization.id, counter_id=counter2.id)
    assert called.id == routed.id


def test_delete_blocked_by_active_tokens(organization, counter, counter_service, issue):
    issue("instant", counter_id=counter.id)

    with pytest.raises(ConflictError):
        counter_service.delete(organization_id=organization.id, counter_id=counter.id)


def test_delete_idle_counter(organization, counter, counter_service):
    counter_service.delete(organization_id=organization.id, counter_id=counter.id)

    assert not Counter.objects.filter(id=counter.id).exists()
    assert SystemLog.objects.filter(action="counter_deleted", entity_id=str(counter.id)).exists()


def test_deactivating_staff_releases_their_counter(organization, counter, staff_user, admin_user, counter_service):
    counter_service.assign(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)

    res = client_for(admin_user).post(f"/api/v1/staff/{staff_user.id}/deactivate/", format="json")

    assert res.status_code == 200
    counter.refresh_from_db()
    assert counter.assigned_staff_id is None


# ----------------------------
# API
# ----------------------------
def test_counter_admin_endpoints(api_client, staff_user):
    res = api_client.post("/api/v1/counters/", {"name": "Desk 9", "description": "ground floor"}, format="json")
    assert res.status_code == 201
    counter_id = res.json()["id"]

    res = api_client.post(f"/api/v1/counters/{counter_id}/assign/", {"staff_id": staff_user.id}, format="json")
    assert res.status_code == 200
    assert res.json()["assigned_staff_username"] == "staff1"

    res = api_client.post(f"/api/v1/counters/{counter_id}/unassign/", format="json")
    assert res.json()["assigned_staff_id"] is None

    res = api_client.delete(f"/api/v1/counters/{counter_id}/")
    assert res.status_code == 204


def test_staff_cannot_create_counters(staff_client):
    res = staff_client.post("/api/v1/counters/", {"name": "Desk 9"}, format="json")
    assert res.status_code == 403


def test_staff_self_service(staff_client, counter, counter2):
    res = staff_client.get("/api/v1/counters/available/")
    assert {c["name"] for c in res.json()} == {"Counter 1", "Counter 2"}

    res = staff_client.post("/api/v1/counters/select/", {"counter_id": str(counter.id)}, format="json")
    assert res.status_code == 200

    res = staff_client.get("/api/v1/counters/available/")
    assert [c["name"] for c in res.json()] == ["Counter 2"]

    res = staff_client.post("/api/v1/counters/select/", {"counter_id": str(counter2.id)}, format="json")
    assert res.status_code == 409

    res = staff_client.post("/api/v1/counters/release/", format="json")
    assert res.status_code == 200


def test_counter_status_endpoint(staff_client, counter, issue):
    issue("instant")
    res = staff_client.get(f"/api/v1/counters/{counter.id}/status/")

    assert res.status_code == 200
    assert res.json()["counters"][0]["waiting_count"] == 1


def test_list_filters_active(staff_client, counter, counter2):
    Counter.objects.filter(id=counter2.id).update(is_active=False)
    res = staff_client.get("/api/v1/counters/", {"is_active": "true"})
    assert [c["name"] for c in res.json()] == ["Counter 1"]

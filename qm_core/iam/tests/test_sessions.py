from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from qm_core.audit.models import SystemLog
from qm_core.common.api.exceptions import ConflictError, NotFoundError
from qm_core.conftest import client_for, make_member
from qm_core.iam.models import ServiceSession
from qm_core.iam.services.sessions import ServiceSessionService

pytestmark = pytest.mark.django_db


@pytest.fixture
def serve(organization, counter, token_service, issue):
    """
    Issue, call, serve and complete one token as `user`.
    """
    def _serve(user, customer_type="instant", minutes=5):
        token = issue(customer_type).token
        called = token_service.call_next(organization_id=organization.id, counter_id=counter.id, staff_user_id=user.id)
        assert called.id == token.id
        token_service.start_serving(organization_id=organization.id, token_id=token.id, staff_user_id=user.id)
        return token_service.complete_service(
            organization_id=organization.id,
            token_id=token.id,
            staff_user_id=user.id,
            service_duration=minutes,
        )

    return _serve


def test_start_and_end(organization, staff_user):
    session = ServiceSessionService.start(organization_id=organization.id, staff_user_id=staff_user.id)
    assert session.is_open

    with pytest.raises(ConflictError):
        ServiceSessionService.start(organization_id=organization.id, staff_user_id=staff_user.id)

    ended = ServiceSessionService.end(organization_id=organization.id, staff_user_id=staff_user.id, notes="lunch")
    assert ended.id == session.id
    assert ended.ended_at is not None
    assert ended.notes == "lunch"
    assert list(
        SystemLog.objects.filter(entity_type="ServiceSession").order_by("occurred_at").values_list("action", flat=True)
    ) == ["session_started", "session_ended"]

    with pytest.raises(NotFoundError):
        ServiceSessionService.end(organization_id=organization.id, staff_user_id=staff_user.id)


def test_call_next_opens_one_session(organization, counter, staff_user, token_service, issue):
    issue("instant")
    issue("instant")

    first = token_service.call_next(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)
    token_service.call_next(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)

    session = ServiceSession.objects.get(staff=staff_user)
    assert session.is_open
    assert not SystemLog.objects.filter(action="session_started").exists()
    log = SystemLog.objects.get(action="token_called", entity_id=str(first.id))
    assert log.details["session_id"] == str(session.id)


def test_call_next_on_empty_queue_opens_nothing(organization, counter, staff_user, token_service):
    assert token_service.call_next(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id) is None
    assert not ServiceSession.objects.exists()


def test_call_next_reuses_started_session(organization, counter, staff_user, token_service, issue):
    started = ServiceSessionService.start(organization_id=organization.id, staff_user_id=staff_user.id)
    issue("browser")

    token_service.call_next(organization_id=organization.id, counter_id=counter.id, staff_user_id=staff_user.id)

    assert list(ServiceSession.objects.values_list("id", flat=True)) == [started.id]


def test_completions_roll_into_session(organization, staff_user, serve):
    serve(staff_user, minutes=4)
    serve(staff_user, minutes=7)

    session = ServiceSession.objects.get(staff=staff_user)
    assert session.tokens_served == 2
    assert session.average_service_time == Decimal("5.50")


def test_completion_after_session_end_is_not_counted(organization, staff_user, serve):
    serve(staff_user, minutes=4)
    ServiceSessionService.end(organization_id=organization.id, staff_user_id=staff_user.id)

    session = ServiceSession.objects.get(staff=staff_user)
    assert ServiceSessionService.record_service(
        organization_id=organization.id, staff_user_id=staff_user.id, service_duration=9
    ) is None
    session.refresh_from_db()
    assert session.tokens_served == 1


def test_performance_metrics(organization, staff_user, serve):
    serve(staff_user, "instant", minutes=4)
    serve(staff_user, "instant", minutes=6)
    serve(staff_user, "retail", minutes=8)
    ServiceSession.objects.filter(staff=staff_user).update(started_at=timezone.now() - timedelta(hours=2))
    ServiceSessionService.end(organization_id=organization.id, staff_user_id=staff_user.id)

    res = client_for(staff_user).get("/api/v1/staff/performance/", {"period": "week"})

    assert res.status_code == 200
    body = res.json()
    assert body["staff_id"] == staff_user.id
    metrics = body["metrics"]
    assert metrics["total_tokens_served"] == 3
    assert metrics["total_sessions"] == 1
    assert metrics["active_sessions"] == 0
    assert metrics["total_working_time"] == 120
    assert metrics["average_service_time"] == 6
    assert metrics["tokens_per_hour"] == 1.5
    assert body["breakdown"]["by_type"] == {"instant": 2, "retail": 1}


def test_performance_rejects_unknown_period(staff_client):
    res = staff_client.get("/api/v1/staff/performance/", {"period": "decade"})
    assert res.status_code == 400


# ----------------------------
# API
# ----------------------------
def test_session_endpoints(staff_client):
    res = staff_client.post("/api/v1/staff/sessions/start/", format="json")
    assert res.status_code == 201
    session_id = res.json()["id"]

    assert staff_client.post("/api/v1/staff/sessions/start/", format="json").status_code == 409

    res = staff_client.get("/api/v1/staff/sessions/", {"active": "true"})
    assert res.status_code == 200
    body = res.json()
    assert [row["id"] for row in body["results"]] == [session_id]
    assert body["stats"]["active_sessions"] == 1

    res = staff_client.post("/api/v1/staff/sessions/end/", {"notes": "shift over"}, format="json")
    assert res.status_code == 200
    assert res.json()["notes"] == "shift over"

    res = staff_client.post("/api/v1/staff/sessions/end/", format="json")
    assert res.status_code == 404


def test_staff_only_see_their_own_sessions(organization, staff_user, admin_user):
    other = make_member("staff2", organization)
    ServiceSessionService.start(organization_id=organization.id, staff_user_id=staff_user.id)
    ServiceSessionService.start(organization_id=organization.id, staff_user_id=other.id)

    res = client_for(staff_user).get("/api/v1/staff/sessions/", {"staff_id": other.id})
    assert [row["staff_username"] for row in res.json()["results"]] == ["staff1"]

    res = client_for(admin_user).get("/api/v1/staff/sessions/")
    assert res.json()["stats"]["total_sessions"] == 2

    res = client_for(admin_user).get("/api/v1/staff/sessions/", {"staff_id": other.id})
    assert [row["staff_username"] for row in res.json()["results"]] == ["staff2"]


def test_admin_performance_for_foreign_staff_is_not_found(api_client, other_organization):
    outsider = make_member("outsider", other_organization)
    res = api_client.get("/api/v1/staff/performance/", {"staff_id": outsider.id})
    assert res.status_code == 404

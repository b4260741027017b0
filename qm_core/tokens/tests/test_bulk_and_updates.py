import uuid

import pytest
from rest_framework.exceptions import ValidationError

from qm_core.audit.models import SystemLog
from qm_core.common.api.exceptions import ConflictError
from qm_core.tokens.models import Token, TokenStatus
from qm_core.tokens.services import TokenPatch

pytestmark = pytest.mark.django_db


def test_update_token_priority_and_counter(organization, counter, token_service, issue, admin_user):
    token = issue("instant").token

    updated = token_service.update_token(
        organization_id=organization.id,
        token_id=token.id,
        patch=TokenPatch(priority=7, counter_id=counter.id),
        actor_user_id=admin_user.id,
    )

    assert updated.priority == 7
    assert updated.counter_id == counter.id
    log = SystemLog.objects.get(action="token_updated")
    assert log.details["old"] == {"priority": 0, "counter_id": None}
    assert log.details["new"] == {"priority": 7, "counter_id": str(counter.id)}


def test_update_token_clear_counter(organization, counter, token_service, issue):
    token = issue("instant", counter_id=counter.id).token

    updated = token_service.update_token(
        organization_id=organization.id,
        token_id=token.id,
        patch=TokenPatch(clear_counter=True),
    )
    assert updated.counter_id is None


def test_cannot_reprioritise_finished_token(organization, token_service, issue):
    token = issue("instant").token
    Token.objects.filter(id=token.id).update(status=TokenStatus.COMPLETED)

    with pytest.raises(ConflictError):
        token_service.update_token(organization_id=organization.id, token_id=token.id, patch=TokenPatch(priority=2))

    # notes stay editable
    noted = token_service.update_token(
        organization_id=organization.id,
        token_id=token.id,
        patch=TokenPatch(notes="follow up by phone"),
    )
    assert noted.notes == "follow up by phone"


def test_empty_patch_is_rejected(organization, token_service, issue):
    token = issue("instant").token
    with pytest.raises(ValidationError):
        token_service.update_token(organization_id=organization.id, token_id=token.id, patch=TokenPatch())


def test_bulk_update_applies_to_every_token(organization, token_service, issue, notifier):
    ids = [issue("retail").token.id for _ in range(3)]

    tokens = token_service.bulk_update(organization_id=organization.id, token_ids=ids, patch=TokenPatch(priority=4))

    assert len(tokens) == 3
    assert set(Token.objects.filter(id__in=ids).values_list("priority", flat=True)) == {4}
    assert SystemLog.objects.filter(action="tokens_bulk_updated").count() == 1
    assert notifier.events[-1] == "tokens:bulk_updated"


def test_bulk_update_with_foreign_id_changes_nothing(organization, other_organization, token_service):
    own = token_service.create_token(organization_id=organization.id, customer_type="instant").token
    foreign = token_service.create_token(organization_id=other_organization.id, customer_type="instant").token

    with pytest.raises(ValidationError) as exc:
        token_service.bulk_update(
            organization_id=organization.id,
            token_ids=[own.id, foreign.id],
            patch=TokenPatch(priority=9),
        )

    assert str(foreign.id) in exc.value.detail["missing"]
    own.refresh_from_db()
    assert own.priority == 0
    assert not SystemLog.objects.filter(action="tokens_bulk_updated").exists()


def test_bulk_cancel_is_all_or_nothing(organization, counter, token_service, issue):
    waiting = issue("instant").token
    serving = issue("instant").token
    Token.objects.filter(id=serving.id).update(status=TokenStatus.SERVING, counter_id=counter.id)

    with pytest.raises(ConflictError):
        token_service.bulk_cancel(organization_id=organization.id, token_ids=[waiting.id, serving.id])

    waiting.refresh_from_db()
    assert waiting.status == TokenStatus.WAITING


def test_bulk_cancel_soft_deletes(organization, token_service, issue):
    ids = [issue("browser").token.id for _ in range(2)]

    token_service.bulk_cancel(organization_id=organization.id, token_ids=ids, reason="closing early")

    rows = Token.objects.filter(id__in=ids)
    assert rows.count() == 2
    assert {t.status for t in rows} == {TokenStatus.CANCELLED}
    log = SystemLog.objects.get(action="tokens_bulk_deleted")
    assert log.entity_id == ""
    assert log.details["reason"] == "closing early"


def test_bulk_rejects_unknown_ids(organization, token_service):
    with pytest.raises(ValidationError):
        token_service.bulk_cancel(organization_id=organization.id, token_ids=[uuid.uuid4()])

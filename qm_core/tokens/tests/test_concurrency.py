"""
Concurrent issue/call against a real database (config.settings.ci).
SQLite serializes writers, so these only run on PostgreSQL.
"""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from qm_core.counters.models import Counter
from qm_core.iam.models import ServiceSession
from qm_core.notifications.hub import RecordingNotifier
from qm_core.queues.models import QueueSetting
from qm_core.tokens.models import Token, TokenStatus
from qm_core.tokens.services import TokenService

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(connection.vendor != "postgresql", reason="needs row locks (run with config.settings.ci)"),
]

WORKERS = 8


def _run_concurrently(fn, args_list):
    """
    Runs fn(*args) on one thread per entry, released together.
    Each thread closes its own DB connection.
    """
    barrier = threading.Barrier(len(args_list))

    def _worker(args):
        try:
            barrier.wait(timeout=10)
            return fn(*args)
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(_worker, args_list))


def _service():
    return TokenService(notifier=RecordingNotifier())


def test_concurrent_issues_get_distinct_contiguous_numbers(organization):
    def _issue(_):
        return _service().create_token(organization_id=organization.id, customer_type="instant").token.number

    numbers = _run_concurrently(_issue, [(i,) for i in range(WORKERS * 2)])

    assert sorted(numbers) == [f"I{n:03d}" for n in range(1, WORKERS * 2 + 1)]
    setting = QueueSetting.objects.get(organization_id=organization.id, customer_type="instant")
    assert setting.current_number == WORKERS * 2


def test_concurrent_call_next_never_hands_out_a_token_twice(organization):
    service = _service()
    tokens = [service.create_token(organization_id=organization.id, customer_type="retail").token for _ in range(5)]
    counters = [Counter.objects.create(organization_id=organization.id, name=f"Desk {i}") for i in range(WORKERS)]

    def _call(counter_id):
        token = _service().call_next(organization_id=organization.id, counter_id=counter_id)
        return token.id if token else None

    called = _run_concurrently(_call, [(c.id,) for c in counters])

    handed_out = [token_id for token_id in called if token_id is not None]
    assert sorted(handed_out) == sorted(t.id for t in tokens)
    assert called.count(None) == WORKERS - len(tokens)

    rows = Token.objects.filter(organization_id=organization.id)
    assert set(rows.values_list("status", flat=True)) == {TokenStatus.CALLED}
    assert rows.order_by().values("counter_id").distinct().count() == len(tokens)


def test_concurrent_call_next_by_one_staff_opens_one_session(organization, staff_user):
    service = _service()
    for _ in range(4):
        service.create_token(organization_id=organization.id, customer_type="browser")
    counters = [Counter.objects.create(organization_id=organization.id, name=f"Desk {i}") for i in range(4)]

    def _call(counter_id):
        return _service().call_next(organization_id=organization.id, counter_id=counter_id, staff_user_id=staff_user.id)

    called = _run_concurrently(_call, [(c.id,) for c in counters])

    assert all(token is not None for token in called)
    assert ServiceSession.objects.filter(staff=staff_user, ended_at__isnull=True).count() == 1


def test_caller_holding_a_claim_does_not_hide_the_rest_of_the_queue(organization, counter, counter2, monkeypatch):
    service = _service()
    first, second, _ = (
        service.create_token(organization_id=organization.id, customer_type="instant").token for _ in range(3)
    )

    claimed = threading.Event()
    release = threading.Event()
    original_claim = TokenService._claim

    def _slow_claim(*, token_id, counter_id, at):
        won = original_claim(token_id=token_id, counter_id=counter_id, at=at)
        if counter_id == counter.id:
            # hold the transaction open after claiming
            claimed.set()
            release.wait(timeout=10)
        return won

    monkeypatch.setattr(TokenService, "_claim", staticmethod(_slow_claim))

    results = {}

    def _call(key, counter_id):
        try:
            token = _service().call_next(organization_id=organization.id, counter_id=counter_id)
            results[key] = token.id if token else None
        finally:
            connection.close()

    holder = threading.Thread(target=_call, args=("a", counter.id))
    holder.start()
    assert claimed.wait(timeout=10)

    other = threading.Thread(target=_call, args=("b", counter2.id))
    other.start()
    other.join(timeout=10)
    release.set()
    holder.join(timeout=10)

    assert results == {"a": first.id, "b": second.id}

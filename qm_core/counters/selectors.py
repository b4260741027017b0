# qm_core/counters/selectors.py
from __future__ import annotations

from typing import Any
from uuid import UUID

from django.db.models import QuerySet

from qm_core.counters.models import Counter

TRUE_VALUES = {"1", "true", "True"}
FALSE_VALUES = {"0", "false", "False"}


def list_counters(*, organization_id: UUID, params: Any = None) -> QuerySet[Counter]:
    """
    Query params:
      - is_active=1|0
      - assigned=1|0
    """
    qs = Counter.objects.select_related("assigned_staff").filter(organization_id=organization_id)
    params = params or {}

    is_active = params.get("is_active")
    if is_active in TRUE_VALUES:
        qs = qs.filter(is_active=True)
    elif is_active in FALSE_VALUES:
        qs = qs.filter(is_active=False)

    assigned = params.get("assigned")
    if assigned in TRUE_VALUES:
        qs = qs.filter(assigned_staff__isnull=False)
    elif assigned in FALSE_VALUES:
        qs = qs.filter(assigned_staff__isnull=True)

    return qs.order_by("name")


def list_available_counters(*, organization_id: UUID) -> QuerySet[Counter]:
    return Counter.objects.filter(
        organization_id=organization_id,
        is_active=True,
        assigned_staff__isnull=True,
    ).order_by("name")


def get_counter_or_none(*, organization_id: UUID, counter_id: UUID) -> Counter | None:
    return (
        Counter.objects.select_related("assigned_staff")
        .filter(organization_id=organization_id, id=counter_id)
        .first()
    )


def get_counter_for_staff(*, organization_id: UUID, user_id: int) -> Counter | None:
    return Counter.objects.filter(organization_id=organization_id, assigned_staff_id=user_id).first()

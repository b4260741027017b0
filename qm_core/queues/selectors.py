# qm_core/queues/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from qm_core.queues.models import QueueSetting


def list_queue_settings(*, organization_id: UUID) -> QuerySet[QueueSetting]:
    return QueueSetting.objects.filter(organization_id=organization_id).order_by("customer_type")


def queue_settings_by_type(*, organization_id: UUID) -> dict[str, QueueSetting]:
    return {s.customer_type: s for s in list_queue_settings(organization_id=organization_id)}

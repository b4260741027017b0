# qm_core/organizations/selectors.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from django.db.models import QuerySet

from qm_core.organizations.models import Organization


def organization_qs() -> QuerySet[Organization]:
    return Organization.objects.all()


def get_organization_or_none(*, organization_id: UUID) -> Optional[Organization]:
    return Organization.objects.filter(id=organization_id).first()


def get_by_code_or_none(*, code: str) -> Optional[Organization]:
    return Organization.objects.filter(code=code).first()


def organization_exists(*, organization_id: UUID) -> bool:
    return Organization.objects.filter(id=organization_id, is_active=True).exists()

# qm_core/organizations/services.py
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from django.db import transaction
from rest_framework.exceptions import ValidationError

from qm_core.common.api.exceptions import NotFoundError
from qm_core.organizations.models import Organization

logger = logging.getLogger(__name__)


class OrganizationService:
    """
    All Organization mutations live here (write-model boundary).
    """

    @staticmethod
    def _get_for_update(organization_id: UUID) -> Organization:
        org = Organization.objects.select_for_update().filter(id=organization_id).first()
        if org is None:
            raise NotFoundError("Organization not found.")
        return org

    @staticmethod
    @transaction.atomic
    def create(
        *,
        name: str,
        code: str,
        settings: Optional[dict] = None,
        provision_queues: bool = True,
    ) -> Organization:
        code = (code or "").strip()
        name = (name or "").strip()

        if not code:
            raise ValidationError({"code": "This field is required."})
        if not name:
            raise ValidationError({"name": "This field is required."})
        if Organization.objects.filter(code=code).exists():
            raise ValidationError({"code": "An organization with this code already exists."})

        org = Organization.objects.create(name=name, code=code, settings=settings or {})

        if provision_queues:
            from qm_core.queues.services import QueueSettingService

            QueueSettingService.provision_defaults(organization_id=org.id)

        logger.info("Organization %s created (provision_queues=%s)", org.code, provision_queues)
        return org

    @staticmethod
    @transaction.atomic
    def update_settings(*, organization_id: UUID, settings: dict) -> Organization:
        if settings is None or not isinstance(settings, dict):
            raise ValidationError({"settings": "Must be a JSON object."})

        org = OrganizationService._get_for_update(organization_id)
        org.settings = settings
        org.save(update_fields=["settings", "updated_at"])
        return org

    @staticmethod
    @transaction.atomic
    def set_active(*, organization_id: UUID, is_active: bool) -> Organization:
        org = OrganizationService._get_for_update(organization_id)

        # idempotent no-op
        if org.is_active == is_active:
            return org

        org.is_active = is_active
        org.save(update_fields=["is_active", "updated_at"])
        logger.info("Organization %s is_active=%s", org.code, is_active)
        return org

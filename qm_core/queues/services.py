# qm_core/queues/services.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from qm_core.audit.services import AuditService
from qm_core.common.api.exceptions import ConfigurationError
from qm_core.notifications import Audience, Notifier, get_notifier, publish_safely
from qm_core.queues.models import CustomerType, QueueSetting
from qm_core.queues.numbering import NumberingAuthority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueSettingPatch:
    """
    Patch object: only non-None fields are applied.
    """
    prefix: Optional[str] = None
    max_number: Optional[int] = None
    reset_daily: Optional[bool] = None
    reset_time: Optional[time] = None
    wrap_at_max: Optional[bool] = None
    priority_multiplier: Optional[Decimal] = None
    is_active: Optional[bool] = None


def queue_setting_payload(setting: QueueSetting) -> dict:
    return {
        "id": str(setting.id),
        "organization_id": str(setting.organization_id),
        "customer_type": setting.customer_type,
        "prefix": setting.prefix,
        "current_number": setting.current_number,
        "max_number": setting.max_number,
        "reset_daily": setting.reset_daily,
        "reset_time": setting.reset_time.strftime("%H:%M:%S"),
        "wrap_at_max": setting.wrap_at_max,
        "priority_multiplier": str(setting.priority_multiplier),
        "is_active": setting.is_active,
    }


class QueueSettingService:
    """
    Administration of QueueSetting rows (numbering sequences).
    """

    def __init__(self, *, notifier: Notifier | None = None):
        self.notifier = notifier or get_notifier()

    @staticmethod
    @transaction.atomic
    def provision_defaults(*, organization_id: UUID) -> list[QueueSetting]:
        """
        Create missing rows for every customer type with default values (idempotent).
        """
        rows = []
        for customer_type in CustomerType.values:
            setting, created = QueueSetting.objects.get_or_create(
                organization_id=organization_id,
                customer_type=customer_type,
                defaults={
                    "prefix": QueueSetting.default_prefix(customer_type),
                    "last_reset_at": timezone.now(),
                },
            )
            if created:
                logger.info("Provisioned %s queue for organization %s", customer_type, organization_id)
            rows.append(setting)
        return rows

    def upsert(
        self,
        *,
        organization_id: UUID,
        customer_type: str,
        patch: QueueSettingPatch,
        actor_user_id: int | None = None,
    ) -> QueueSetting:
        if customer_type not in CustomerType.values:
            raise ValidationError({"customer_type": f"Invalid customer type. Allowed: {list(CustomerType.values)}"})

        changes = {k: v for k, v in asdict(patch).items() if v is not None}

        with transaction.atomic():
            setting = (
                QueueSetting.objects.select_for_update()
                .filter(organization_id=organization_id, customer_type=customer_type)
                .first()
            )
            created = setting is None
            if created:
                setting = QueueSetting(
                    organization_id=organization_id,
                    customer_type=customer_type,
                    prefix=QueueSetting.default_prefix(customer_type),
                    last_reset_at=timezone.now(),
                )

            before = queue_setting_payload(setting) if not created else None

            for field, value in changes.items():
                setattr(setting, field, value)

            if setting.current_number > setting.max_number:
                raise ValidationError(
                    {"max_number": f"Must be at least the current number ({setting.current_number}); reset the queue first."}
                )

            setting.save()
            after = queue_setting_payload(setting)

            AuditService.log(
                action="queue_settings_updated",
                entity_type="QueueSetting",
                entity_id=setting.id,
                organization_id=organization_id,
                actor_user_id=actor_user_id,
                details={"customer_type": customer_type, "created": created, "old": before, "new": after},
            )

        publish_safely(self.notifier, Audience.organization(organization_id), "queue:settings_updated", after)
        return setting

    def reset(
        self,
        *,
        organization_id: UUID,
        customer_type: str | None = None,
        actor_user_id: int | None = None,
    ) -> list[QueueSetting]:
        """
        Manual reset: current_number := 0 for one customer type, or all of them.
        """
        if customer_type is not None and customer_type not in CustomerType.values:
            raise ValidationError({"customer_type": f"Invalid customer type. Allowed: {list(CustomerType.values)}"})

        with transaction.atomic():
            qs = QueueSetting.objects.select_for_update().filter(organization_id=organization_id)
            if customer_type:
                qs = qs.filter(customer_type=customer_type)
            settings_ = list(qs.order_by("customer_type"))

            if not settings_:
                raise ConfigurationError("No queue settings to reset.")

            now = timezone.now()
            previous = {}
            for setting in settings_:
                previous[setting.customer_type] = setting.current_number
                setting.current_number = 0
                setting.last_reset_at = now
                setting.save(update_fields=["current_number", "last_reset_at", "updated_at"])

            AuditService.log(
                action="queue_reset",
                entity_type="QueueSetting",
                entity_id=settings_[0].id if customer_type else None,
                organization_id=organization_id,
                actor_user_id=actor_user_id,
                details={"customer_type": customer_type, "previous_numbers": previous},
            )

        logger.info("Queue reset for organization %s (%s)", organization_id, customer_type or "all types")
        publish_safely(
            self.notifier,
            Audience.organization(organization_id),
            "queue:reset",
            {"organization_id": str(organization_id), "customer_type": customer_type, "reset_at": now.isoformat()},
        )
        return settings_

    @staticmethod
    def apply_due_resets(*, at: datetime | None = None) -> int:
        """
        Apply pending daily resets for every organization (cron entry point).
        Issuance applies them lazily as well; this keeps displays honest overnight.
        """
        at = at or timezone.now()
        count = 0
        ids = QueueSetting.objects.filter(reset_daily=True, is_active=True).values_list("id", flat=True)

        for setting_id in ids:
            with transaction.atomic():
                setting = QueueSetting.objects.select_for_update().get(id=setting_id)
                previous = setting.current_number
                first_use = setting.last_reset_at is None

                if NumberingAuthority.apply_daily_reset(setting, at=at):
                    setting.save(update_fields=["current_number", "last_reset_at", "updated_at"])
                    AuditService.log(
                        action="queue_daily_reset",
                        entity_type="QueueSetting",
                        entity_id=setting.id,
                        organization_id=setting.organization_id,
                        actor_user_id=None,
                        details={"customer_type": setting.customer_type, "previous_number": previous},
                    )
                    count += 1
                elif first_use:
                    setting.save(update_fields=["last_reset_at", "updated_at"])

        return count

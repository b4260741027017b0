# qm_core/queues/numbering.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from qm_core.common.api.exceptions import ConfigurationError, ConflictError
from qm_core.queues.models import QueueSetting

logger = logging.getLogger(__name__)

NUMBER_WIDTH = 3


@dataclass(frozen=True)
class IssuedNumber:
    number: str  # e.g. "I007"
    sequence: int
    queue_setting_id: UUID
    wrapped: bool = False
    reset: bool = False


def format_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{NUMBER_WIDTH}d}"


def last_reset_boundary(setting: QueueSetting, at: datetime) -> datetime:
    """
    Most recent local reset_time at or before `at`.
    """
    local = timezone.localtime(at)
    boundary = timezone.make_aware(datetime.combine(local.date(), setting.reset_time))
    if boundary > local:
        boundary = timezone.make_aware(datetime.combine(local.date() - timedelta(days=1), setting.reset_time))
    return boundary


def daily_reset_due(setting: QueueSetting, at: datetime) -> bool:
    if not setting.reset_daily or setting.last_reset_at is None:
        return False
    return setting.last_reset_at < last_reset_boundary(setting, at)


class NumberingAuthority:
    """
    Hands out prefixed, per-(organization, customer type) numbers.

    issue_number locks the QueueSetting row, so it must share the transaction
    of the token insert: the increment and the token commit together or not at all.
    """

    @staticmethod
    def _lock_setting(*, organization_id: UUID, customer_type: str) -> QueueSetting:
        setting = (
            QueueSetting.objects.select_for_update()
            .filter(organization_id=organization_id, customer_type=customer_type)
            .first()
        )
        if setting is None:
            raise ConfigurationError(f"Queue not configured for customer type '{customer_type}'.")
        if not setting.is_active:
            raise ConfigurationError(f"Queue for customer type '{customer_type}' is not active.")
        return setting

    @staticmethod
    def apply_daily_reset(setting: QueueSetting, *, at: datetime) -> bool:
        """
        Zero the sequence when a reset_time boundary passed since the last reset.
        Caller holds the row lock. Returns True when a reset happened.
        """
        if setting.reset_daily and setting.last_reset_at is None:
            # first use: start tracking without discarding today's sequence
            setting.last_reset_at = at
            return False

        if not daily_reset_due(setting, at):
            return False

        logger.info(
            "Daily reset of %s queue for organization %s (was %s)",
            setting.customer_type,
            setting.organization_id,
            setting.current_number,
        )
        setting.current_number = 0
        setting.last_reset_at = at
        return True

    @staticmethod
    @transaction.atomic
    def issue_number(*, organization_id: UUID, customer_type: str, at: datetime | None = None) -> IssuedNumber:
        at = at or timezone.now()
        setting = NumberingAuthority._lock_setting(organization_id=organization_id, customer_type=customer_type)

        reset = NumberingAuthority.apply_daily_reset(setting, at=at)

        wrapped = False
        if setting.current_number >= setting.max_number:
            if not setting.wrap_at_max:
                raise ConflictError(
                    f"Queue number limit ({setting.max_number}) reached for customer type '{customer_type}'."
                )
            logger.warning(
                "Queue %s for organization %s reached max_number=%s; wrapping to 1",
                customer_type,
                organization_id,
                setting.max_number,
            )
            setting.current_number = 0
            wrapped = True

        setting.current_number += 1
        setting.save(update_fields=["current_number", "last_reset_at", "updated_at"])

        return IssuedNumber(
            number=format_number(setting.prefix, setting.current_number),
            sequence=setting.current_number,
            queue_setting_id=setting.id,
            wrapped=wrapped,
            reset=reset,
        )

# qm_core/counters/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from qm_core.audit.services import AuditService
from qm_core.common.api.exceptions import ConflictError, NotFoundError
from qm_core.counters.models import Counter
from qm_core.iam.services.membership import is_active_member
from qm_core.notifications import Audience, Notifier, get_notifier, publish_safely
from qm_core.tokens.models import Token, TokenStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterPatch:
    """
    Patch object: only non-None fields are applied.
    """
    name: Optional[str] = None
    description: Optional[str] = None


def counter_payload(counter: Counter) -> dict:
    return {
        "id": str(counter.id),
        "organization_id": str(counter.organization_id),
        "name": counter.name,
        "is_active": counter.is_active,
        "assigned_staff_id": counter.assigned_staff_id,
    }


class CounterService:
    """
    Counter administration and staff assignment.

    Notes:
    - Every mutation writes one audit row in its transaction.
    - `counter:updated` is published to the organization once the transaction block exits.
    - No-op calls (activating an active counter, etc.) write nothing.
    """

    def __init__(self, *, notifier: Notifier | None = None):
        self.notifier = notifier or get_notifier()

    # -------------------------
    # Internal helpers
    # -------------------------
    @staticmethod
    def _get_for_update(*, organization_id: UUID, counter_id: UUID) -> Counter:
        counter = Counter.objects.select_for_update().filter(organization_id=organization_id, id=counter_id).first()
        if counter is None:
            raise NotFoundError("Counter not found.")
        return counter

    @staticmethod
    def _check_name_free(*, organization_id: UUID, name: str, exclude_id: UUID | None = None) -> None:
        qs = Counter.objects.filter(organization_id=organization_id, name=name)
        if exclude_id is not None:
            qs = qs.exclude(id=exclude_id)
        if qs.exists():
            raise ConflictError("A counter with this name already exists.")

    @staticmethod
    def _check_staff_assignable(*, organization_id: UUID, user_id: int, exclude_counter_id: UUID | None) -> None:
        if not is_active_member(user_id=user_id, organization_id=organization_id):
            raise NotFoundError("Staff member not found or inactive.")
        qs = Counter.objects.filter(organization_id=organization_id, assigned_staff_id=user_id)
        if exclude_counter_id is not None:
            qs = qs.exclude(id=exclude_counter_id)
        if qs.exists():
            raise ConflictError("Staff member is already assigned to another counter.")

    @staticmethod
    def _audit(counter: Counter, *, action: str, actor_user_id: int | None, details: dict) -> None:
        AuditService.log(
            action=action,
            entity_type="Counter",
            entity_id=counter.id,
            organization_id=counter.organization_id,
            actor_user_id=actor_user_id,
            details={"counter_name": counter.name, **details},
        )

    def _publish(self, counter: Counter, *, action: str) -> None:
        publish_safely(
            self.notifier,
            Audience.organization(counter.organization_id),
            "counter:updated",
            {"action": action, "counter": counter_payload(counter)},
        )

    # -------------------------
    # Administration
    # -------------------------
    def create(
        self,
        *,
        organization_id: UUID,
        name: str,
        description: str = "",
        is_active: bool = True,
        assigned_staff_id: int | None = None,
        actor_user_id: int | None = None,
    ) -> Counter:
        name = (name or "").strip()
        if not name:
            raise ValidationError({"name": "This field is required."})

        with transaction.atomic():
            self._check_name_free(organization_id=organization_id, name=name)
            if assigned_staff_id is not None:
                self._check_staff_assignable(
                    organization_id=organization_id,
                    user_id=assigned_staff_id,
                    exclude_counter_id=None,
                )

            counter = Counter.objects.create(
                organization_id=organization_id,
                name=name,
                description=description or "",
                is_active=is_active,
                assigned_staff_id=assigned_staff_id,
            )
            self._audit(
                counter,
                action="counter_created",
                actor_user_id=actor_user_id,
                details={"is_active": is_active, "assigned_staff_id": assigned_staff_id},
            )

        logger.info("Counter %s created in organization %s", counter.name, organization_id)
        self._publish(counter, action="counter_created")
        return counter

    def update(
        self,
        *,
        organization_id: UUID,
        counter_id: UUID,
        patch: CounterPatch,
        actor_user_id: int | None = None,
    ) -> Counter:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            changes: dict = {}

            if patch.name is not None:
                name = patch.name.strip()
                if not name:
                    raise ValidationError({"name": "This field may not be blank."})
                if name != counter.name:
                    self._check_name_free(organization_id=organization_id, name=name, exclude_id=counter.id)
                    changes["name"] = {"old": counter.name, "new": name}
                    counter.name = name

            if patch.description is not None and patch.description != counter.description:
                changes["description"] = {"old": counter.description, "new": patch.description}
                counter.description = patch.description

            if not changes:
                return counter

            counter.save(update_fields=["name", "description", "updated_at"])
            self._audit(counter, action="counter_updated", actor_user_id=actor_user_id, details={"changes": changes})

        self._publish(counter, action="counter_updated")
        return counter

    def activate(self, *, organization_id: UUID, counter_id: UUID, actor_user_id: int | None = None) -> Counter:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            if counter.is_active:
                return counter

            counter.is_active = True
            counter.save(update_fields=["is_active", "updated_at"])
            self._audit(counter, action="counter_activated", actor_user_id=actor_user_id, details={})

        self._publish(counter, action="counter_activated")
        return counter

    def deactivate(self, *, organization_id: UUID, counter_id: UUID, actor_user_id: int | None = None) -> Counter:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            if not counter.is_active:
                return counter

            in_service = Token.objects.filter(
                counter_id=counter.id,
                status__in=[TokenStatus.CALLED, TokenStatus.SERVING],
            ).exists()
            if in_service:
                raise ConflictError("Counter has a token being called or served; finish it first.")

            # waiting tokens routed here go back to the shared queue
            rerouted = [
                str(token_id)
                for token_id in Token.objects.select_for_update()
                .filter(counter_id=counter.id, status=TokenStatus.WAITING)
                .values_list("id", flat=True)
            ]
            if rerouted:
                Token.objects.filter(id__in=rerouted).update(counter=None, updated_at=timezone.now())

            counter.is_active = False
            counter.save(update_fields=["is_active", "updated_at"])
            self._audit(
                counter,
                action="counter_deactivated",
                actor_user_id=actor_user_id,
                details={"released_token_ids": rerouted},
            )

        self._publish(counter, action="counter_deactivated")
        return counter

    def delete(self, *, organization_id: UUID, counter_id: UUID, actor_user_id: int | None = None) -> None:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)

            active = Token.objects.filter(
                counter_id=counter.id,
                status__in=[TokenStatus.WAITING, TokenStatus.CALLED, TokenStatus.SERVING],
            ).exists()
            if active:
                raise ConflictError("Cannot delete a counter with active tokens.")

            self._audit(counter, action="counter_deleted", actor_user_id=actor_user_id, details={})
            payload = counter_payload(counter)
            counter.delete()

        publish_safely(
            self.notifier,
            Audience.organization(organization_id),
            "counter:updated",
            {"action": "counter_deleted", "counter": payload},
        )

    # -------------------------
    # Staff assignment
    # -------------------------
    def assign(
        self,
        *,
        organization_id: UUID,
        counter_id: UUID,
        staff_user_id: int,
        actor_user_id: int | None = None,
    ) -> Counter:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            if counter.assigned_staff_id == staff_user_id:
                return counter

            self._check_staff_assignable(
                organization_id=organization_id,
                user_id=staff_user_id,
                exclude_counter_id=counter.id,
            )

            previous = counter.assigned_staff_id
            counter.assigned_staff_id = staff_user_id
            counter.save(update_fields=["assigned_staff", "updated_at"])
            self._audit(
                counter,
                action="counter_staff_assigned",
                actor_user_id=actor_user_id,
                details={"staff_id": staff_user_id, "previous_staff_id": previous},
            )

        self._publish(counter, action="counter_staff_assigned")
        return counter

    def unassign(self, *, organization_id: UUID, counter_id: UUID, actor_user_id: int | None = None) -> Counter:
        with transaction.atomic():
            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            if counter.assigned_staff_id is None:
                return counter

            previous = counter.assigned_staff_id
            counter.assigned_staff_id = None
            counter.save(update_fields=["assigned_staff", "updated_at"])
            self._audit(
                counter,
                action="counter_staff_unassigned",
                actor_user_id=actor_user_id,
                details={"staff_id": previous},
            )

        self._publish(counter, action="counter_staff_unassigned")
        return counter

    def select(self, *, organization_id: UUID, counter_id: UUID, staff_user_id: int) -> Counter:
        """
        Staff self-assignment to a free, active counter.
        """
        with transaction.atomic():
            if Counter.objects.filter(organization_id=organization_id, assigned_staff_id=staff_user_id).exists():
                raise ConflictError("You already have a counter assigned.")

            counter = self._get_for_update(organization_id=organization_id, counter_id=counter_id)
            if not counter.is_active or counter.assigned_staff_id is not None:
                raise ConflictError("Counter is inactive or already assigned.")

            counter.assigned_staff_id = staff_user_id
            counter.save(update_fields=["assigned_staff", "updated_at"])
            self._audit(
                counter,
                action="counter_staff_assigned",
                actor_user_id=staff_user_id,
                details={"staff_id": staff_user_id, "self_selected": True},
            )

        self._publish(counter, action="counter_staff_assigned")
        return counter

    def release(self, *, organization_id: UUID, staff_user_id: int) -> Counter:
        with transaction.atomic():
            counter = (
                Counter.objects.select_for_update()
                .filter(organization_id=organization_id, assigned_staff_id=staff_user_id)
                .first()
            )
            if counter is None:
                raise NotFoundError("No counter assigned to you.")

            counter.assigned_staff_id = None
            counter.save(update_fields=["assigned_staff", "updated_at"])
            self._audit(
                counter,
                action="counter_staff_unassigned",
                actor_user_id=staff_user_id,
                details={"staff_id": staff_user_id, "self_released": True},
            )

        self._publish(counter, action="counter_staff_unassigned")
        return counter

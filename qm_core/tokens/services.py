# qm_core/tokens/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from qm_core.audit.services import AuditService
from qm_core.common.api.exceptions import ConflictError, NotFoundError
from qm_core.counters.models import Counter
from qm_core.iam.services.sessions import ServiceSessionService
from qm_core.notifications import Audience, Notifier, get_notifier, publish_safely
from qm_core.organizations.models import Organization
from qm_core.queues.models import CustomerType
from qm_core.queues.numbering import NumberingAuthority
from qm_core.tokens import selectors
from qm_core.tokens.conf import engine_setting
from qm_core.tokens.models import (
    CANCELLABLE_STATUSES,
    PRIORITY_MAX,
    PRIORITY_MIN,
    Token,
    TokenStatus,
)

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return max(0, int((end - start).total_seconds() // 60))


def token_payload(token: Token) -> dict:
    """
    JSON-able broadcast body for a token.
    """
    return {
        "id": str(token.id),
        "organization_id": str(token.organization_id),
        "number": token.number,
        "customer_type": token.customer_type,
        "status": token.status,
        "priority": token.priority,
        "counter_id": str(token.counter_id) if token.counter_id else None,
        "served_by_id": token.served_by_id,
        "estimated_wait_time": token.estimated_wait_time,
        "actual_wait_time": token.actual_wait_time,
        "service_duration": token.service_duration,
        "created_at": _iso(token.created_at),
        "called_at": _iso(token.called_at),
        "served_at": _iso(token.served_at),
        "completed_at": _iso(token.completed_at),
        "cancelled_at": _iso(token.cancelled_at),
    }


@dataclass(frozen=True)
class TokenIssue:
    token: Token
    position: int
    estimated_wait_time: int


@dataclass(frozen=True)
class TokenPatch:
    """
    Patch object for update_token / bulk_update.
    Fields left as None are untouched; clear_counter=True detaches the counter.
    Status is not patchable.
    """
    priority: Optional[int] = None
    counter_id: Optional[UUID] = None
    clear_counter: bool = False
    notes: Optional[str] = None
    metadata: Optional[dict] = None

    def is_empty(self) -> bool:
        return (
            self.priority is None
            and self.counter_id is None
            and not self.clear_counter
            and self.notes is None
            and self.metadata is None
        )

    def as_details(self) -> dict:
        details: dict[str, Any] = {}
        if self.priority is not None:
            details["priority"] = self.priority
        if self.counter_id is not None:
            details["counter_id"] = str(self.counter_id)
        if self.clear_counter:
            details["counter_id"] = None
        if self.notes is not None:
            details["notes"] = self.notes
        if self.metadata is not None:
            details["metadata"] = self.metadata
        return details


class TokenService:
    """
    Token Lifecycle Engine.

        waiting --call_next--> called --start_serving--> serving --complete_service--> completed
        called --mark_no_show--> no_show --recall--> called
        waiting|called --cancel--> cancelled

    Notes:
    - Each operation validates organization ownership and the current status, then
      writes its state change and exactly one audit row in one transaction.
    - Exactly one broadcast per successful operation, published after the
      transaction block; a failing notifier never affects the result.
    - Wrong organization -> NotFoundError; wrong status -> ConflictError.
    """

    def __init__(self, *, notifier: Notifier | None = None):
        self.notifier = notifier or get_notifier()

    # -------------------------
    # Internal helpers
    # -------------------------
    @staticmethod
    def _get_for_update(*, organization_id: UUID, token_id: UUID) -> Token:
        token = Token.objects.select_for_update().filter(organization_id=organization_id, id=token_id).first()
        if token is None:
            raise NotFoundError("Token not found.")
        return token

    @staticmethod
    def _require_status(token: Token, allowed: Iterable[str], operation: str) -> None:
        allowed = tuple(allowed)
        if token.status not in allowed:
            raise ConflictError(
                f"Cannot {operation} token {token.number}: status is '{token.status}', "
                f"expected {' or '.join(allowed)}."
            )

    @staticmethod
    def _get_counter(*, organization_id: UUID, counter_id: UUID, require_active: bool = True) -> Counter:
        counter = Counter.objects.filter(organization_id=organization_id, id=counter_id).first()
        if counter is None:
            raise NotFoundError("Counter not found.")
        if require_active and not counter.is_active:
            raise ConflictError(f"Counter '{counter.name}' is not active.")
        return counter

    @staticmethod
    def _check_customer_type(customer_type: str) -> None:
        if customer_type not in CustomerType.values:
            raise ValidationError({"customer_type": f"Invalid customer type. Allowed: {list(CustomerType.values)}"})

    @staticmethod
    def _check_priority(priority: int) -> None:
        if not PRIORITY_MIN <= priority <= PRIORITY_MAX:
            raise ValidationError({"priority": f"Must be between {PRIORITY_MIN} and {PRIORITY_MAX}."})

    @staticmethod
    def _audit(token: Token, *, action: str, actor_user_id: int | None, details: dict | None = None) -> None:
        AuditService.log(
            action=action,
            entity_type="Token",
            entity_id=token.id,
            organization_id=token.organization_id,
            actor_user_id=actor_user_id,
            details={"number": token.number, **(details or {})},
        )

    def _publish(self, organization_id: UUID, event: str, payload: dict) -> None:
        publish_safely(self.notifier, Audience.organization(organization_id), event, payload)

    @staticmethod
    def _validated_ids(token_ids: Iterable[UUID]) -> list[UUID]:
        ids = list(dict.fromkeys(token_ids))
        limit = engine_setting("BULK_MAX_TOKENS")
        if not ids:
            raise ValidationError({"token_ids": "Provide at least one token id."})
        if len(ids) > limit:
            raise ValidationError({"token_ids": f"At most {limit} tokens per request."})
        return ids

    @staticmethod
    def _lock_batch(*, organization_id: UUID, token_ids: list[UUID]) -> list[Token]:
        """
        All ids must resolve inside the organization, else nothing is touched.
        """
        tokens = list(
            Token.objects.select_for_update()
            .filter(organization_id=organization_id, id__in=token_ids)
            .order_by("created_at")
        )
        if len(tokens) != len(token_ids):
            found = {t.id for t in tokens}
            missing = [str(i) for i in token_ids if i not in found]
            raise ValidationError(
                {"token_ids": "Some tokens were not found in this organization.", "missing": missing}
            )
        return tokens

    # -------------------------
    # Creation
    # -------------------------
    def create_token(
        self,
        *,
        organization_id: UUID,
        customer_type: str,
        priority: int = 0,
        counter_id: UUID | None = None,
        notes: str = "",
        metadata: dict | None = None,
        issued_by_id: int | None = None,
    ) -> TokenIssue:
        if not Organization.objects.filter(id=organization_id, is_active=True).exists():
            raise NotFoundError("Organization not found.")
        self._check_customer_type(customer_type)
        self._check_priority(priority)
        if counter_id is not None:
            self._get_counter(organization_id=organization_id, counter_id=counter_id)

        with transaction.atomic():
            issued = NumberingAuthority.issue_number(organization_id=organization_id, customer_type=customer_type)

            token = Token.objects.create(
                organization_id=organization_id,
                customer_type=customer_type,
                number=issued.number,
                priority=priority,
                counter_id=counter_id,
                notes=notes or "",
                metadata=metadata or {},
                issued_by_id=issued_by_id,
            )

            position = selectors.position_of(token)
            average = selectors.average_service_minutes(organization_id=organization_id, customer_type=customer_type)
            token.estimated_wait_time = selectors.estimate_wait_minutes(position=position, average_minutes=average)
            token.save(update_fields=["estimated_wait_time", "updated_at"])

            self._audit(
                token,
                action="token_created",
                actor_user_id=issued_by_id,
                details={
                    "customer_type": customer_type,
                    "priority": priority,
                    "position": position,
                    "estimated_wait_time": token.estimated_wait_time,
                },
            )

        logger.info(
            "Token %s issued for organization %s (position %s, ~%s min)",
            token.number,
            organization_id,
            position,
            token.estimated_wait_time,
        )
        self._publish(
            organization_id,
            "token:created",
            {"token": token_payload(token), "position": position, "estimated_wait_time": token.estimated_wait_time},
        )
        return TokenIssue(token=token, position=position, estimated_wait_time=token.estimated_wait_time)

    # -------------------------
    # Calling
    # -------------------------
    @staticmethod
    def _claim(*, token_id: UUID, counter_id: UUID, at: datetime) -> bool:
        """
        Conditional waiting -> called. Returns False when another caller got there first.
        """
        updated = Token.objects.filter(id=token_id, status=TokenStatus.WAITING).update(
            status=TokenStatus.CALLED,
            counter_id=counter_id,
            called_at=at,
            updated_at=at,
        )
        return updated == 1

    def call_next(
        self,
        *,
        organization_id: UUID,
        counter_id: UUID,
        staff_user_id: int | None = None,
        customer_type: str | None = None,
    ) -> Optional[Token]:
        """
        Highest priority, oldest waiting token (unassigned or already routed to this counter).
        Returns None when the queue is empty.
        """
        counter = self._get_counter(organization_id=organization_id, counter_id=counter_id)
        if customer_type is not None:
            self._check_customer_type(customer_type)

        token = None
        with transaction.atomic():
            candidates = Token.objects.filter(organization_id=organization_id, status=TokenStatus.WAITING).filter(
                Q(counter__isnull=True) | Q(counter_id=counter.id)
            )
            if customer_type:
                candidates = candidates.filter(customer_type=customer_type)
            candidates = candidates.order_by("-priority", "created_at")

            # one row lock per attempt; rows locked by other callers are skipped, not waited on
            lost: list[UUID] = []
            while token is None:
                token_id = (
                    candidates.exclude(id__in=lost)
                    .select_for_update(skip_locked=True)
                    .values_list("id", flat=True)
                    .first()
                )
                if token_id is None:
                    break
                if self._claim(token_id=token_id, counter_id=counter.id, at=timezone.now()):
                    token = Token.objects.get(id=token_id)
                else:
                    logger.debug("Token %s was claimed concurrently; trying the next one", token_id)
                    lost.append(token_id)

            if token is None:
                logger.info("call_next: queue empty for counter %s", counter.name)
                return None

            session = None
            if staff_user_id is not None:
                session = ServiceSessionService.open_for_call(
                    organization_id=organization_id,
                    staff_user_id=staff_user_id,
                )

            self._audit(
                token,
                action="token_called",
                actor_user_id=staff_user_id,
                details={
                    "counter_id": str(counter.id),
                    "counter_name": counter.name,
                    "waited_minutes": minutes_between(token.created_at, token.called_at),
                    "session_id": str(session.id) if session else None,
                },
            )

        logger.info("Token %s called to counter %s", token.number, counter.name)
        self._publish(organization_id, "token:called", {"token": token_payload(token), "counter_name": counter.name})
        return token

    # -------------------------
    # Transitions
    # -------------------------
    def start_serving(self, *, organization_id: UUID, token_id: UUID, staff_user_id: int | None = None) -> Token:
        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, [TokenStatus.CALLED], "start serving")

            token.status = TokenStatus.SERVING
            token.served_at = timezone.now()
            token.served_by_id = staff_user_id
            token.save(update_fields=["status", "served_at", "served_by", "updated_at"])

            self._audit(token, action="token_serving", actor_user_id=staff_user_id)

        logger.info("Token %s now serving", token.number)
        self._publish(organization_id, "token:serving", {"token": token_payload(token)})
        return token

    def complete_service(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        staff_user_id: int | None = None,
        service_duration: int | None = None,
        rating: int | None = None,
        notes: str | None = None,
    ) -> Token:
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError({"rating": "Must be between 1 and 5."})
        if service_duration is not None and service_duration < 0:
            raise ValidationError({"service_duration": "Must be zero or more."})

        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, [TokenStatus.SERVING], "complete")

            now = timezone.now()
            token.status = TokenStatus.COMPLETED
            token.completed_at = now
            token.actual_wait_time = minutes_between(token.created_at, token.called_at)
            token.service_duration = (
                service_duration if service_duration is not None else minutes_between(token.served_at, now)
            )
            if token.served_by_id is None:
                token.served_by_id = staff_user_id
            if notes:
                token.notes = notes
            if rating is not None:
                token.metadata = {**(token.metadata or {}), "rating": rating}
            token.save(
                update_fields=[
                    "status",
                    "completed_at",
                    "actual_wait_time",
                    "service_duration",
                    "served_by",
                    "notes",
                    "metadata",
                    "updated_at",
                ]
            )

            if token.served_by_id is not None and token.service_duration is not None:
                ServiceSessionService.record_service(
                    organization_id=organization_id,
                    staff_user_id=token.served_by_id,
                    service_duration=token.service_duration,
                )

            self._audit(
                token,
                action="service_completed",
                actor_user_id=staff_user_id,
                details={
                    "service_duration": token.service_duration,
                    "actual_wait_time": token.actual_wait_time,
                    "rating": rating,
                },
            )

        logger.info("Token %s completed in %s min", token.number, token.service_duration)
        self._publish(organization_id, "token:completed", {"token": token_payload(token)})
        return token

    def mark_no_show(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        staff_user_id: int | None = None,
        notes: str | None = None,
    ) -> Token:
        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, [TokenStatus.CALLED], "mark as no-show")

            token.status = TokenStatus.NO_SHOW
            if notes:
                token.notes = notes
            token.save(update_fields=["status", "notes", "updated_at"])

            self._audit(token, action="token_no_show", actor_user_id=staff_user_id, details={"notes": notes})

        logger.info("Token %s marked no-show", token.number)
        self._publish(organization_id, "token:no_show", {"token": token_payload(token)})
        return token

    def recall(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        counter_id: UUID,
        staff_user_id: int | None = None,
    ) -> Token:
        counter = self._get_counter(organization_id=organization_id, counter_id=counter_id)

        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, [TokenStatus.NO_SHOW], "recall")

            previous_counter_id = token.counter_id
            token.status = TokenStatus.CALLED
            token.counter_id = counter.id
            token.called_at = timezone.now()
            token.save(update_fields=["status", "counter", "called_at", "updated_at"])

            self._audit(
                token,
                action="token_recalled",
                actor_user_id=staff_user_id,
                details={
                    "counter_id": str(counter.id),
                    "previous_counter_id": str(previous_counter_id) if previous_counter_id else None,
                },
            )

        logger.info("Token %s recalled to counter %s", token.number, counter.name)
        self._publish(organization_id, "token:recalled", {"token": token_payload(token), "counter_name": counter.name})
        return token

    def cancel(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        reason: str | None = None,
        staff_user_id: int | None = None,
    ) -> Token:
        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, CANCELLABLE_STATUSES, "cancel")

            previous_status = token.status
            token.status = TokenStatus.CANCELLED
            token.cancelled_at = timezone.now()
            if reason:
                token.notes = reason
            token.save(update_fields=["status", "cancelled_at", "notes", "updated_at"])

            self._audit(
                token,
                action="token_cancelled",
                actor_user_id=staff_user_id,
                details={"reason": reason, "previous_status": previous_status},
            )

        logger.info("Token %s cancelled", token.number)
        self._publish(organization_id, "token:cancelled", {"token": token_payload(token)})
        return token

    def repeat_announce(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        counter_id: UUID,
        staff_user_id: int | None = None,
    ) -> Token:
        """
        No state change: re-publishes `token:called` for a token already called at this counter.
        """
        counter = self._get_counter(organization_id=organization_id, counter_id=counter_id, require_active=False)

        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            self._require_status(token, [TokenStatus.CALLED], "announce")
            if token.counter_id != counter.id:
                raise ConflictError(f"Token {token.number} is not called at counter '{counter.name}'.")

            self._audit(token, action="token_announced", actor_user_id=staff_user_id, details={"counter_id": str(counter.id)})

        self._publish(
            organization_id,
            "token:called",
            {"token": token_payload(token), "counter_name": counter.name, "repeat": True},
        )
        return token

    # -------------------------
    # Administration
    # -------------------------
    def _apply_patch(self, token: Token, patch: TokenPatch, *, organization_id: UUID) -> list[str]:
        fields: list[str] = []

        if patch.priority is not None or patch.counter_id is not None or patch.clear_counter:
            if not token.is_active:
                raise ConflictError(
                    f"Cannot reprioritise or reroute token {token.number}: status is '{token.status}'."
                )

        if patch.priority is not None:
            self._check_priority(patch.priority)
            token.priority = patch.priority
            fields.append("priority")

        if patch.clear_counter:
            token.counter_id = None
            fields.append("counter")
        elif patch.counter_id is not None:
            self._get_counter(organization_id=organization_id, counter_id=patch.counter_id)
            token.counter_id = patch.counter_id
            fields.append("counter")

        if patch.notes is not None:
            token.notes = patch.notes
            fields.append("notes")

        if patch.metadata is not None:
            token.metadata = patch.metadata
            fields.append("metadata")

        return fields

    def update_token(
        self,
        *,
        organization_id: UUID,
        token_id: UUID,
        patch: TokenPatch,
        actor_user_id: int | None = None,
    ) -> Token:
        if patch.is_empty():
            raise ValidationError("Provide at least one of: priority, counter_id, notes, metadata.")

        with transaction.atomic():
            token = self._get_for_update(organization_id=organization_id, token_id=token_id)
            before = {"priority": token.priority, "counter_id": str(token.counter_id) if token.counter_id else None}

            fields = self._apply_patch(token, patch, organization_id=organization_id)
            token.save(update_fields=[*fields, "updated_at"])

            self._audit(
                token,
                action="token_updated",
                actor_user_id=actor_user_id,
                details={"old": before, "new": patch.as_details()},
            )

        self._publish(organization_id, "token:updated", {"token": token_payload(token)})
        return token

    def bulk_update(
        self,
        *,
        organization_id: UUID,
        token_ids: Iterable[UUID],
        patch: TokenPatch,
        actor_user_id: int | None = None,
    ) -> list[Token]:
        ids = self._validated_ids(token_ids)
        if patch.is_empty():
            raise ValidationError("Provide at least one of: priority, counter_id, notes, metadata.")

        with transaction.atomic():
            tokens = self._lock_batch(organization_id=organization_id, token_ids=ids)
            for token in tokens:
                fields = self._apply_patch(token, patch, organization_id=organization_id)
                token.save(update_fields=[*fields, "updated_at"])

            AuditService.log(
                action="tokens_bulk_updated",
                entity_type="Token",
                entity_id=None,
                organization_id=organization_id,
                actor_user_id=actor_user_id,
                details={"token_ids": [str(t.id) for t in tokens], "patch": patch.as_details()},
            )

        logger.info("Bulk update of %s tokens in organization %s", len(tokens), organization_id)
        self._publish(
            organization_id,
            "tokens:bulk_updated",
            {"token_ids": [str(t.id) for t in tokens], "patch": patch.as_details()},
        )
        return tokens

    def bulk_cancel(
        self,
        *,
        organization_id: UUID,
        token_ids: Iterable[UUID],
        reason: str | None = None,
        actor_user_id: int | None = None,
    ) -> list[Token]:
        """
        Soft delete: every token must still be waiting/called, or the whole batch is refused.
        """
        ids = self._validated_ids(token_ids)

        with transaction.atomic():
            tokens = self._lock_batch(organization_id=organization_id, token_ids=ids)

            blocked = [t for t in tokens if t.status not in CANCELLABLE_STATUSES]
            if blocked:
                raise ConflictError(
                    "Only waiting or called tokens can be cancelled: "
                    + ", ".join(f"{t.number} ({t.status})" for t in blocked)
                )

            now = timezone.now()
            for token in tokens:
                token.status = TokenStatus.CANCELLED
                token.cancelled_at = now
                if reason:
                    token.notes = reason
                token.save(update_fields=["status", "cancelled_at", "notes", "updated_at"])

            AuditService.log(
                action="tokens_bulk_deleted",
                entity_type="Token",
                entity_id=None,
                organization_id=organization_id,
                actor_user_id=actor_user_id,
                details={"token_ids": [str(t.id) for t in tokens], "reason": reason},
            )

        logger.info("Bulk cancel of %s tokens in organization %s", len(tokens), organization_id)
        self._publish(
            organization_id,
            "tokens:bulk_cancelled",
            {"token_ids": [str(t.id) for t in tokens], "reason": reason},
        )
        return tokens

# qm_core/iam/services/sessions.py
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone

from qm_core.audit.services import AuditService
from qm_core.common.api.exceptions import ConflictError, NotFoundError
from qm_core.iam.models import ServiceSession

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


class ServiceSessionService:
    """
    Staff service sessions.

    start/end are explicit staff actions (one audit row each).
    open_for_call / record_service run inside the token engine's transaction
    and write no audit rows of their own.
    """

    @staticmethod
    def _open_for_update(*, organization_id: UUID, staff_user_id: int) -> ServiceSession | None:
        return (
            ServiceSession.objects.select_for_update()
            .filter(organization_id=organization_id, staff_id=staff_user_id, ended_at__isnull=True)
            .first()
        )

    @staticmethod
    def start(*, organization_id: UUID, staff_user_id: int) -> ServiceSession:
        with transaction.atomic():
            if ServiceSessionService._open_for_update(organization_id=organization_id, staff_user_id=staff_user_id):
                raise ConflictError("An active session already exists.")

            try:
                with transaction.atomic():
                    session = ServiceSession.objects.create(
                        organization_id=organization_id,
                        staff_id=staff_user_id,
                        started_at=timezone.now(),
                    )
            except IntegrityError:
                # opened concurrently (another start or a call-next)
                raise ConflictError("An active session already exists.")

            AuditService.log(
                action="session_started",
                entity_type="ServiceSession",
                entity_id=session.id,
                organization_id=organization_id,
                actor_user_id=staff_user_id,
                details={"staff_id": staff_user_id, "started_at": session.started_at},
            )

        logger.info("Service session %s started by user %s", session.id, staff_user_id)
        return session

    @staticmethod
    def end(*, organization_id: UUID, staff_user_id: int, notes: str | None = None) -> ServiceSession:
        with transaction.atomic():
            session = ServiceSessionService._open_for_update(
                organization_id=organization_id,
                staff_user_id=staff_user_id,
            )
            if session is None:
                raise NotFoundError("No active session found.")

            session.ended_at = timezone.now()
            if notes:
                session.notes = notes
            session.save(update_fields=["ended_at", "notes"])

            AuditService.log(
                action="session_ended",
                entity_type="ServiceSession",
                entity_id=session.id,
                organization_id=organization_id,
                actor_user_id=staff_user_id,
                details={
                    "staff_id": staff_user_id,
                    "duration": session.duration_minutes,
                    "tokens_served": session.tokens_served,
                    "notes": notes,
                },
            )

        logger.info("Service session %s ended (%s tokens)", session.id, session.tokens_served)
        return session

    @staticmethod
    def open_for_call(*, organization_id: UUID, staff_user_id: int) -> ServiceSession:
        """
        Returns the staff member's open session, opening one when none exists.
        Must run inside the caller's transaction.
        """
        session = ServiceSessionService._open_for_update(organization_id=organization_id, staff_user_id=staff_user_id)
        if session is not None:
            return session

        try:
            with transaction.atomic():
                session = ServiceSession.objects.create(
                    organization_id=organization_id,
                    staff_id=staff_user_id,
                    started_at=timezone.now(),
                )
        except IntegrityError:
            # opened concurrently; use the other row
            return ServiceSessionService._open_for_update(organization_id=organization_id, staff_user_id=staff_user_id)

        logger.info("Service session %s opened by call-next for user %s", session.id, staff_user_id)
        return session

    @staticmethod
    def record_service(*, organization_id: UUID, staff_user_id: int, service_duration: int) -> ServiceSession | None:
        """
        Folds one completed service into the open session's running mean.
        Must run inside the caller's transaction; no-op without an open session.
        """
        session = ServiceSessionService._open_for_update(organization_id=organization_id, staff_user_id=staff_user_id)
        if session is None:
            return None

        served = session.tokens_served + 1
        current = session.average_service_time
        if session.tokens_served == 0 or current is None:
            average = Decimal(service_duration)
        else:
            average = (current * session.tokens_served + service_duration) / served

        session.tokens_served = served
        session.average_service_time = average.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        session.save(update_fields=["tokens_served", "average_service_time"])
        return session

# qm_core/audit/services.py
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from qm_core.audit.models import SystemLog


class AuditService:
    """
    Central audit writer.

    Runs inside the caller's transaction so the log row commits (or rolls back)
    together with the change it describes.
    """

    @staticmethod
    def log(
        *,
        action: str,
        entity_type: str,
        entity_id: UUID | int | str | None,
        organization_id: UUID,
        actor_user_id: int | None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SystemLog:
        return SystemLog.objects.create(
            organization_id=organization_id,
            action=action,
            entity_type=entity_type,
            entity_id="" if entity_id is None else str(entity_id),
            actor_user_id=actor_user_id,
            details=details or {},
        )

from __future__ import annotations

import logging
from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string

from qm_core.notifications.base import Audience, AudienceKind, Broadcast, Notifier

__all__ = ["Audience", "AudienceKind", "Broadcast", "Notifier", "get_notifier", "publish_safely"]

logger = logging.getLogger(__name__)

DEFAULT_NOTIFIER = "qm_core.notifications.hub.InProcessNotifier"


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    """
    Process-wide notifier built from QUEUE_ENGINE["NOTIFIER"].
    Services take a notifier argument; this is only the default they fall back to.
    """
    path = getattr(settings, "QUEUE_ENGINE", {}).get("NOTIFIER", DEFAULT_NOTIFIER)
    return import_string(path)()


def publish_safely(notifier: Notifier, audience: Audience, event: str, payload: dict) -> None:
    """
    Fire-and-forget publish: a failing notifier is logged, never raised.
    Call it after the transaction that produced the change has committed.
    """
    try:
        notifier.publish(audience, event, payload)
    except Exception:
        logger.exception("Notifier %r failed to publish %s to %s", notifier, event, audience.room)

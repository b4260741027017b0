# qm_core/tokens/conf.py
from __future__ import annotations

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    # estimator: last N completed tokens of a customer type within the lookback
    "SERVICE_TIME_WINDOW": 20,
    "SERVICE_TIME_LOOKBACK_DAYS": 7,
    "DEFAULT_SERVICE_MINUTES": {"instant": 3, "browser": 5, "retail": 8},
    "FALLBACK_SERVICE_MINUTES": 5,
    # queue status projection
    "COUNTER_SERVICE_WINDOW": 20,
    "NEXT_TOKENS_LIMIT": 10,
    "RECENT_WINDOW_HOURS": 24,
    # bulk operations
    "BULK_MAX_TOKENS": 50,
}


def engine_setting(name: str) -> Any:
    """
    QUEUE_ENGINE[name] with the package default as fallback.
    Read at call time so tests can override settings.
    """
    return getattr(settings, "QUEUE_ENGINE", {}).get(name, DEFAULTS[name])

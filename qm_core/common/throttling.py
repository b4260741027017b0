# qm_core/common/throttling.py
from __future__ import annotations

from rest_framework.throttling import ScopedRateThrottle


class PublicScopedRateThrottle(ScopedRateThrottle):
    """
    ScopedRateThrottle keyed by client IP even when a user is authenticated.

    Kiosks and display screens share one address per site, so per-IP buckets
    are what protects the public token and status endpoints.
    """

    def get_cache_key(self, request, view):
        return self.cache_format % {
            "scope": self.scope,
            "ident": self.get_ident(request),
        }

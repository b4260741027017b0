# qm_core/iam/auth.py
from __future__ import annotations

from django.conf import settings
from rest_framework_simplejwt.authentication import JWTAuthentication

from qm_core.iam.scope import apply_scope


def access_cookie_name() -> str:
    return settings.SIMPLE_JWT.get("AUTH_COOKIE", "qm_access")


class CookieOrHeaderJWTAuthentication(JWTAuthentication):
    """
    Staff dashboards send the access token as a Bearer header; the browser
    console relies on the qm_access cookie set at login. A header, when sent,
    wins over the cookie.

    The organization scope is bound to the request as soon as the user is known.
    """

    def _raw_token(self, request) -> bytes | str | None:
        header = self.get_header(request)
        if header is not None:
            return self.get_raw_token(header)
        return request.COOKIES.get(access_cookie_name()) or None

    def authenticate(self, request):
        raw = self._raw_token(request)
        if raw is None:
            return None

        validated = self.get_validated_token(raw)
        user = self.get_user(validated)
        apply_scope(request, user=user)
        return user, validated

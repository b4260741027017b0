# qm_core/iam/selectors.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID

from django.db.models import Avg, Count, Q, QuerySet
from django.db.models.functions import ExtractHour
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from qm_core.iam.models import ServiceSession, UserProfile, UserRole


def list_staff(*, organization_id: UUID, params: Any) -> QuerySet[UserProfile]:
    """
    Query params:
      - role in {staff, admin, super_admin}
      - is_active=1|0
      - search (username/email contains)
    """
    qs = UserProfile.objects.select_related("user").filter(organization_id=organization_id)

    role = params.get("role")
    if role:
        if role not in UserRole.values:
            raise ValidationError({"role": f"Invalid role. Allowed: {list(UserRole.values)}"})
        qs = qs.filter(role=role)

    is_active = params.get("is_active")
    if is_active in {"1", "true", "True"}:
        qs = qs.filter(is_active=True)
    elif is_active in {"0", "false", "False"}:
        qs = qs.filter(is_active=False)

    search = (params.get("search") or "").strip()
    if search:
        qs = qs.filter(Q(user__username__icontains=search) | Q(user__email__icontains=search))

    return qs.order_by("user__username")


def get_staff_or_none(*, organization_id: UUID, user_id: int) -> UserProfile | None:
    return (
        UserProfile.objects.select_related("user")
        .filter(organization_id=organization_id, user_id=user_id)
        .first()
    )


# ----------------------------
# Service sessions
# ----------------------------
PERFORMANCE_PERIODS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}


def _parse_date(params: Any, key: str) -> date | None:
    raw = (params.get(key) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError({key: "Use YYYY-MM-DD."})


def list_sessions(*, organization_id: UUID, staff_user_id: int | None, params: Any) -> QuerySet[ServiceSession]:
    """
    staff_user_id=None lists every member's sessions.

    Query params:
      - date_from / date_to (YYYY-MM-DD, on started_at)
      - active=1|0
    """
    qs = ServiceSession.objects.select_related("staff").filter(organization_id=organization_id)
    if staff_user_id is not None:
        qs = qs.filter(staff_id=staff_user_id)

    date_from = _parse_date(params, "date_from")
    if date_from:
        qs = qs.filter(started_at__date__gte=date_from)
    date_to = _parse_date(params, "date_to")
    if date_to:
        qs = qs.filter(started_at__date__lte=date_to)

    active = params.get("active")
    if active in {"1", "true", "True"}:
        qs = qs.filter(ended_at__isnull=True)
    elif active in {"0", "false", "False"}:
        qs = qs.filter(ended_at__isnull=False)

    return qs.order_by("-started_at")


def _closed_minutes(sessions) -> int:
    return sum(s.duration_minutes for s in sessions if s.ended_at is not None)


def session_stats(qs: QuerySet[ServiceSession]) -> dict:
    sessions = list(qs)
    served = sum(s.tokens_served for s in sessions)
    weighted = [s.average_service_time * s.tokens_served for s in sessions if s.average_service_time is not None]
    return {
        "total_sessions": len(sessions),
        "active_sessions": sum(1 for s in sessions if s.ended_at is None),
        "total_tokens_served": served,
        "total_duration": _closed_minutes(sessions),
        "average_service_time": int(round(sum(weighted) / served)) if served and weighted else 0,
    }


def _period_start(period: str, now: datetime) -> datetime:
    if period == "today":
        local = timezone.localtime(now)
        return timezone.make_aware(datetime.combine(local.date(), time.min))
    if period not in PERFORMANCE_PERIODS:
        raise ValidationError({"period": f"Invalid period. Allowed: {['today', *PERFORMANCE_PERIODS]}"})
    return now - PERFORMANCE_PERIODS[period]


def get_staff_performance(*, organization_id: UUID, staff_user_id: int, period: str = "today") -> dict:
    """
    Work done by one staff member since the start of `period`
    (today = local midnight, week/month/year = trailing 7/30/365 days).
    """
    from qm_core.tokens.models import Token, TokenStatus

    now = timezone.now()
    start = _period_start(period, now)

    sessions = list(
        ServiceSession.objects.filter(
            organization_id=organization_id,
            staff_id=staff_user_id,
            started_at__gte=start,
        )
    )
    served = Token.objects.filter(
        organization_id=organization_id,
        served_by_id=staff_user_id,
        status=TokenStatus.COMPLETED,
        completed_at__gte=start,
    )

    total_served = served.count()
    working_minutes = _closed_minutes(sessions)
    average = served.aggregate(v=Avg("service_duration"))["v"]
    per_hour = round(total_served * 60 / working_minutes, 2) if working_minutes else 0.0

    by_type = {row["customer_type"]: row["n"] for row in served.order_by().values("customer_type").annotate(n=Count("id"))}
    by_hour = {
        row["hour"]: row["n"]
        for row in served.annotate(hour=ExtractHour("completed_at", tzinfo=timezone.get_current_timezone()))
        .values("hour")
        .annotate(n=Count("id"))
        .order_by("hour")
    }

    return {
        "staff_id": staff_user_id,
        "period": {"name": period, "start": start, "end": now},
        "metrics": {
            "total_tokens_served": total_served,
            "total_working_time": working_minutes,
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if s.ended_at is None),
            "average_service_time": int(round(average)) if average is not None else 0,
            "tokens_per_hour": per_hour,
            "efficiency": per_hour,
        },
        "breakdown": {"by_type": by_type, "by_hour": by_hour},
    }

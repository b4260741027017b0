# qm_core/tokens/selectors.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

import django_filters
from django.db.models import Avg, Count, Q, QuerySet
from django.db.models.functions import ExtractHour
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from qm_core.common.api.exceptions import NotFoundError
from qm_core.counters.models import Counter
from qm_core.queues.models import CustomerType, QueueSetting
from qm_core.tokens.conf import engine_setting
from qm_core.tokens.models import ACTIVE_STATUSES, Token, TokenStatus


# ----------------------------
# Lookups
# ----------------------------
def get_token_or_none(*, organization_id: UUID, token_id: UUID) -> Token | None:
    return (
        Token.objects.select_related("counter", "served_by")
        .filter(organization_id=organization_id, id=token_id)
        .first()
    )


def get_token(*, organization_id: UUID, token_id: UUID) -> Token:
    token = get_token_or_none(organization_id=organization_id, token_id=token_id)
    if token is None:
        raise NotFoundError("Token not found.")
    return token


class TokenFilter(django_filters.FilterSet):
    """
    Query params:
      - status=waiting&status=called
      - customer_type=instant&customer_type=retail
      - counter_id, served_by
      - date_from / date_to (YYYY-MM-DD, on created_at)
      - number (contains)
      - ordering in {created_at, called_at, completed_at, priority} (prefix '-' for desc)
    """
    status = django_filters.MultipleChoiceFilter(choices=TokenStatus.choices)
    customer_type = django_filters.MultipleChoiceFilter(choices=CustomerType.choices)
    counter_id = django_filters.UUIDFilter(field_name="counter_id")
    served_by = django_filters.NumberFilter(field_name="served_by_id")
    date_from = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    date_to = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")
    number = django_filters.CharFilter(field_name="number", lookup_expr="icontains")
    ordering = django_filters.OrderingFilter(
        fields=(
            ("created_at", "created_at"),
            ("called_at", "called_at"),
            ("completed_at", "completed_at"),
            ("priority", "priority"),
        )
    )

    class Meta:
        model = Token
        fields = []


def list_tokens(*, organization_id: UUID, params: Any) -> QuerySet[Token]:
    qs = Token.objects.select_related("counter", "served_by").filter(organization_id=organization_id)
    filterset = TokenFilter(params, queryset=qs)
    if not filterset.is_valid():
        raise ValidationError(filterset.errors)

    qs = filterset.qs
    if not qs.query.order_by:
        qs = qs.order_by("-created_at")
    return qs


# ----------------------------
# Estimator
# ----------------------------
def _mean_minutes(values: Iterable[Optional[int]]) -> Optional[int]:
    values = [v for v in values if v is not None]
    if not values:
        return None
    return math.ceil(sum(values) / len(values))


def default_service_minutes(customer_type: str) -> int:
    defaults = engine_setting("DEFAULT_SERVICE_MINUTES") or {}
    return int(defaults.get(customer_type, engine_setting("FALLBACK_SERVICE_MINUTES")))


def average_service_minutes(*, organization_id: UUID, customer_type: str, at: datetime | None = None) -> int:
    """
    Mean service_duration of the last SERVICE_TIME_WINDOW completed tokens of the type
    within SERVICE_TIME_LOOKBACK_DAYS. Falls back to the per-type default.
    """
    at = at or timezone.now()
    since = at - timedelta(days=engine_setting("SERVICE_TIME_LOOKBACK_DAYS"))
    durations = (
        Token.objects.filter(
            organization_id=organization_id,
            customer_type=customer_type,
            status=TokenStatus.COMPLETED,
            service_duration__isnull=False,
            completed_at__gte=since,
        )
        .order_by("-completed_at")
        .values_list("service_duration", flat=True)[: engine_setting("SERVICE_TIME_WINDOW")]
    )
    avg = _mean_minutes(durations)
    return avg if avg is not None else default_service_minutes(customer_type)


def counter_average_service_minutes(*, counter_id: UUID) -> Optional[int]:
    durations = (
        Token.objects.filter(
            counter_id=counter_id,
            status=TokenStatus.COMPLETED,
            service_duration__isnull=False,
        )
        .order_by("-completed_at")
        .values_list("service_duration", flat=True)[: engine_setting("COUNTER_SERVICE_WINDOW")]
    )
    return _mean_minutes(durations)


def organization_average_service_minutes(*, organization_id: UUID) -> Optional[int]:
    durations = (
        Token.objects.filter(
            organization_id=organization_id,
            status=TokenStatus.COMPLETED,
            service_duration__isnull=False,
        )
        .order_by("-completed_at")
        .values_list("service_duration", flat=True)[: engine_setting("COUNTER_SERVICE_WINDOW")]
    )
    return _mean_minutes(durations)


def position_of(token: Token) -> int:
    """
    1-based rank among active tokens of the same organization and type:
    higher priority first, then earlier creation.
    """
    ahead = (
        Token.objects.filter(
            organization_id=token.organization_id,
            customer_type=token.customer_type,
            status__in=ACTIVE_STATUSES,
        )
        .filter(Q(priority__gt=token.priority) | Q(priority=token.priority, created_at__lt=token.created_at))
        .exclude(id=token.id)
        .count()
    )
    return ahead + 1


def estimate_wait_minutes(*, position: int, average_minutes: int) -> int:
    return position * average_minutes


@dataclass(frozen=True)
class TokenPosition:
    token: Token
    position: Optional[int]
    estimated_wait_time: Optional[int]


def get_position(token: Token) -> TokenPosition:
    """
    Live position + estimate. Inactive tokens have neither.
    """
    if not token.is_active:
        return TokenPosition(token=token, position=None, estimated_wait_time=None)

    position = position_of(token)
    average = average_service_minutes(organization_id=token.organization_id, customer_type=token.customer_type)
    return TokenPosition(
        token=token,
        position=position,
        estimated_wait_time=estimate_wait_minutes(position=position, average_minutes=average),
    )


# ----------------------------
# Queue status projection
# ----------------------------
@dataclass(frozen=True)
class CounterQueueStatus:
    counter: Counter
    current_token: Optional[Token]
    next_tokens: list[Token]
    waiting_count: int
    average_service_time: Optional[int]


@dataclass(frozen=True)
class QueueSummary:
    total_waiting: int
    total_called: int
    total_serving: int
    total_completed: int
    total_cancelled: int
    total_no_show: int
    average_wait_time: Optional[int]
    average_service_time: Optional[int]
    busiest_hour: Optional[int]


@dataclass(frozen=True)
class QueueStatusSnapshot:
    organization_id: UUID
    counters: list[CounterQueueStatus]
    summary: QueueSummary
    recently_completed: list[Token]
    no_show_queue: list[Token]
    queue_settings: list[QueueSetting]
    generated_at: datetime = field(compare=False)


def _local_day_start(at: datetime) -> datetime:
    local = timezone.localtime(at)
    return timezone.make_aware(datetime.combine(local.date(), time.min))


def _round_or_none(value) -> Optional[int]:
    return None if value is None else int(round(value))


def _hour_distribution(qs: QuerySet[Token]) -> list[dict]:
    rows = (
        qs.annotate(hour=ExtractHour("created_at", tzinfo=timezone.get_current_timezone()))
        .values("hour")
        .annotate(count=Count("id"))
        .order_by("hour")
    )
    return [{"hour": r["hour"], "count": r["count"]} for r in rows]


def _busiest(distribution: list[dict]) -> Optional[dict]:
    if not distribution:
        return None
    # earliest hour wins ties
    return max(distribution, key=lambda r: (r["count"], -r["hour"]))


def _status_totals(qs: QuerySet[Token]) -> dict[str, int]:
    totals = {s: 0 for s in TokenStatus.values}
    for row in qs.values("status").annotate(n=Count("id")):
        totals[row["status"]] = row["n"]
    return totals


def _counter_status(counter: Counter, *, org_average: Optional[int], limit: int) -> CounterQueueStatus:
    current = (
        Token.objects.filter(counter_id=counter.id, status=TokenStatus.SERVING)
        .order_by("-served_at")
        .first()
    )

    eligible = Token.objects.filter(organization_id=counter.organization_id, status__in=ACTIVE_STATUSES).filter(
        Q(counter__isnull=True) | Q(counter_id=counter.id)
    )
    next_tokens = list(eligible.order_by("-priority", "created_at")[:limit])
    waiting_count = eligible.filter(status=TokenStatus.WAITING).count()

    average = counter_average_service_minutes(counter_id=counter.id)
    return CounterQueueStatus(
        counter=counter,
        current_token=current,
        next_tokens=next_tokens,
        waiting_count=waiting_count,
        average_service_time=average if average is not None else org_average,
    )


def get_queue_status(*, organization_id: UUID, counter_id: UUID | None = None) -> QueueStatusSnapshot:
    """
    Read-only projection of the organization's queues, optionally narrowed to one counter.
    Day aggregates cover tokens created since local midnight.
    """
    now = timezone.now()

    counters_qs = Counter.objects.select_related("assigned_staff").filter(organization_id=organization_id)
    if counter_id is not None:
        counters = list(counters_qs.filter(id=counter_id))
        if not counters:
            raise NotFoundError("Counter not found.")
    else:
        counters = list(counters_qs.filter(is_active=True).order_by("name"))

    limit = engine_setting("NEXT_TOKENS_LIMIT")
    org_average = organization_average_service_minutes(organization_id=organization_id)
    counter_rows = [_counter_status(c, org_average=org_average, limit=limit) for c in counters]

    scope = Token.objects.filter(organization_id=organization_id)
    if counter_id is not None:
        scope = scope.filter(counter_id=counter_id)

    today = scope.filter(created_at__gte=_local_day_start(now))
    totals = _status_totals(today)
    averages = today.filter(status=TokenStatus.COMPLETED).aggregate(
        wait=Avg("actual_wait_time"),
        service=Avg("service_duration"),
    )
    busiest = _busiest(_hour_distribution(today))

    summary = QueueSummary(
        total_waiting=totals[TokenStatus.WAITING],
        total_called=totals[TokenStatus.CALLED],
        total_serving=totals[TokenStatus.SERVING],
        total_completed=totals[TokenStatus.COMPLETED],
        total_cancelled=totals[TokenStatus.CANCELLED],
        total_no_show=totals[TokenStatus.NO_SHOW],
        average_wait_time=_round_or_none(averages["wait"]),
        average_service_time=_round_or_none(averages["service"]),
        busiest_hour=busiest["hour"] if busiest else None,
    )

    recent_since = now - timedelta(hours=engine_setting("RECENT_WINDOW_HOURS"))
    recently_completed = list(
        scope.filter(status=TokenStatus.COMPLETED, completed_at__gte=recent_since).order_by("-completed_at")[:limit]
    )
    no_show_queue = list(
        scope.filter(status=TokenStatus.NO_SHOW, updated_at__gte=recent_since).order_by("-updated_at")[:limit]
    )

    queue_settings = list(
        QueueSetting.objects.filter(organization_id=organization_id, is_active=True).order_by("customer_type")
    )

    return QueueStatusSnapshot(
        organization_id=organization_id,
        counters=counter_rows,
        summary=summary,
        recently_completed=recently_completed,
        no_show_queue=no_show_queue,
        queue_settings=queue_settings,
        generated_at=now,
    )


# ----------------------------
# Statistics
# ----------------------------
def get_queue_statistics(
    *,
    organization_id: UUID,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    """
    Aggregates over tokens created between date_from and date_to (local dates, inclusive).
    Both default to today.
    """
    today = timezone.localdate()
    date_from = date_from or today
    date_to = date_to or today
    if date_from > date_to:
        raise ValidationError({"date_from": "Must be on or before date_to."})

    qs = Token.objects.filter(
        organization_id=organization_id,
        created_at__date__gte=date_from,
        created_at__date__lte=date_to,
    )

    totals = _status_totals(qs)
    total = sum(totals.values())
    completed = qs.filter(status=TokenStatus.COMPLETED)
    averages = completed.aggregate(wait=Avg("actual_wait_time"), service=Avg("service_duration"))

    by_type = []
    for customer_type in CustomerType.values:
        type_qs = qs.filter(customer_type=customer_type)
        type_completed = type_qs.filter(status=TokenStatus.COMPLETED)
        by_type.append(
            {
                "customer_type": customer_type,
                "total": type_qs.count(),
                "completed": type_completed.count(),
                "average_service_time": _round_or_none(type_completed.aggregate(v=Avg("service_duration"))["v"]),
            }
        )

    by_hour = _hour_distribution(qs)

    return {
        "organization_id": organization_id,
        "date_from": date_from,
        "date_to": date_to,
        "total": total,
        "by_status": totals,
        "completion_rate": round(totals[TokenStatus.COMPLETED] * 100 / total, 1) if total else 0.0,
        "average_wait_time": _round_or_none(averages["wait"]),
        "average_service_time": _round_or_none(averages["service"]),
        "by_customer_type": by_type,
        "by_hour": by_hour,
        "busiest_hour": _busiest(by_hour),
    }

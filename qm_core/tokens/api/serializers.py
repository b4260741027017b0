# qm_core/tokens/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from qm_core.counters.models import Counter
from qm_core.queues.api.serializers import QueueSettingSerializer
from qm_core.queues.models import CustomerType
from qm_core.tokens.conf import engine_setting
from qm_core.tokens.models import PRIORITY_MAX, PRIORITY_MIN, Token


class TokenSerializer(serializers.ModelSerializer):
    counter_id = serializers.UUIDField(read_only=True, allow_null=True)
    counter_name = serializers.CharField(source="counter.name", read_only=True, default=None)
    served_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Token
        fields = [
            "id",
            "organization_id",
            "number",
            "customer_type",
            "status",
            "priority",
            "counter_id",
            "counter_name",
            "served_by_id",
            "estimated_wait_time",
            "actual_wait_time",
            "service_duration",
            "notes",
            "metadata",
            "created_at",
            "called_at",
            "served_at",
            "completed_at",
            "cancelled_at",
            "updated_at",
        ]
        read_only_fields = fields


class PublicTokenSerializer(serializers.ModelSerializer):
    """
    What a customer (kiosk, phone) may see about a token.
    """
    counter_name = serializers.CharField(source="counter.name", read_only=True, default=None)

    class Meta:
        model = Token
        fields = [
            "id",
            "number",
            "customer_type",
            "status",
            "counter_name",
            "estimated_wait_time",
            "created_at",
            "called_at",
        ]
        read_only_fields = fields


# ----------------------------
# Inputs
# ----------------------------
class TokenCreateSerializer(serializers.Serializer):
    customer_type = serializers.ChoiceField(choices=CustomerType.choices)
    priority = serializers.IntegerField(required=False, default=0, min_value=PRIORITY_MIN, max_value=PRIORITY_MAX)
    counter_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)
    metadata = serializers.DictField(required=False, default=dict)


class PublicTokenCreateSerializer(serializers.Serializer):
    """
    Unauthenticated issue: customers pick a type only.
    organization is the organization code; the configured default applies when omitted.
    """
    organization = serializers.SlugField(required=False, allow_blank=True, default="")
    customer_type = serializers.ChoiceField(choices=CustomerType.choices)
    metadata = serializers.DictField(required=False, default=dict)


class TokenUpdateSerializer(serializers.Serializer):
    priority = serializers.IntegerField(required=False, min_value=PRIORITY_MIN, max_value=PRIORITY_MAX)
    counter_id = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    metadata = serializers.DictField(required=False)

    def validate(self, attrs):
        if "status" in (getattr(self, "initial_data", None) or {}):
            raise serializers.ValidationError({"status": "Status changes only through the lifecycle actions."})
        if not attrs:
            raise serializers.ValidationError("Provide at least one of: priority, counter_id, notes, metadata.")
        return attrs


class CallNextSerializer(serializers.Serializer):
    counter_id = serializers.UUIDField()
    customer_type = serializers.ChoiceField(choices=CustomerType.choices, required=False, allow_null=True)


class CompleteServiceSerializer(serializers.Serializer):
    service_duration = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=24 * 60)
    rating = serializers.IntegerField(required=False, allow_null=True, min_value=1, max_value=5)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class CounterTargetSerializer(serializers.Serializer):
    counter_id = serializers.UUIDField()


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class BulkUpdateSerializer(serializers.Serializer):
    token_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)
    patch = TokenUpdateSerializer()

    def validate_token_ids(self, value):
        limit = engine_setting("BULK_MAX_TOKENS")
        if len(value) > limit:
            raise serializers.ValidationError(f"At most {limit} tokens per request.")
        return value

    def validate(self, attrs):
        patch_data = self.initial_data.get("patch") or {}
        if isinstance(patch_data, dict) and "status" in patch_data:
            raise serializers.ValidationError({"patch": {"status": "Status cannot be bulk-updated."}})
        return attrs


class BulkDeleteSerializer(serializers.Serializer):
    token_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)

    def validate_token_ids(self, value):
        limit = engine_setting("BULK_MAX_TOKENS")
        if len(value) > limit:
            raise serializers.ValidationError(f"At most {limit} tokens per request.")
        return value


# ----------------------------
# Outputs
# ----------------------------
class TokenIssueSerializer(serializers.Serializer):
    token = TokenSerializer()
    position = serializers.IntegerField()
    estimated_wait_time = serializers.IntegerField()


class PublicTokenIssueSerializer(serializers.Serializer):
    token = PublicTokenSerializer()
    position = serializers.IntegerField()
    estimated_wait_time = serializers.IntegerField()


class TokenPositionSerializer(serializers.Serializer):
    token = PublicTokenSerializer()
    position = serializers.IntegerField(allow_null=True)
    estimated_wait_time = serializers.IntegerField(allow_null=True)


class CounterBriefSerializer(serializers.ModelSerializer):
    assigned_staff_username = serializers.CharField(source="assigned_staff.username", read_only=True, default=None)

    class Meta:
        model = Counter
        fields = ["id", "name", "is_active", "assigned_staff_id", "assigned_staff_username"]
        read_only_fields = fields


class CounterQueueStatusSerializer(serializers.Serializer):
    counter = CounterBriefSerializer()
    current_token = TokenSerializer(allow_null=True)
    next_tokens = TokenSerializer(many=True)
    waiting_count = serializers.IntegerField()
    average_service_time = serializers.IntegerField(allow_null=True)


class QueueSummarySerializer(serializers.Serializer):
    total_waiting = serializers.IntegerField()
    total_called = serializers.IntegerField()
    total_serving = serializers.IntegerField()
    total_completed = serializers.IntegerField()
    total_cancelled = serializers.IntegerField()
    total_no_show = serializers.IntegerField()
    average_wait_time = serializers.IntegerField(allow_null=True)
    average_service_time = serializers.IntegerField(allow_null=True)
    busiest_hour = serializers.IntegerField(allow_null=True)


class QueueStatusSerializer(serializers.Serializer):
    organization_id = serializers.UUIDField()
    counters = CounterQueueStatusSerializer(many=True)
    summary = QueueSummarySerializer()
    recently_completed = TokenSerializer(many=True)
    no_show_queue = TokenSerializer(many=True)
    queue_settings = QueueSettingSerializer(many=True)
    generated_at = serializers.DateTimeField()


class HourCountSerializer(serializers.Serializer):
    hour = serializers.IntegerField()
    count = serializers.IntegerField()


class CustomerTypeStatsSerializer(serializers.Serializer):
    customer_type = serializers.CharField()
    total = serializers.IntegerField()
    completed = serializers.IntegerField()
    average_service_time = serializers.IntegerField(allow_null=True)


class QueueStatisticsSerializer(serializers.Serializer):
    organization_id = serializers.UUIDField()
    date_from = serializers.DateField()
    date_to = serializers.DateField()
    total = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())
    completion_rate = serializers.FloatField()
    average_wait_time = serializers.IntegerField(allow_null=True)
    average_service_time = serializers.IntegerField(allow_null=True)
    by_customer_type = CustomerTypeStatsSerializer(many=True)
    by_hour = HourCountSerializer(many=True)
    busiest_hour = HourCountSerializer(allow_null=True)


class StatisticsQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)


class BulkResultSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    tokens = TokenSerializer(many=True)

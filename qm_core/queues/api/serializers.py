# qm_core/queues/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from qm_core.queues.models import CustomerType, QueueSetting


class QueueSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = QueueSetting
        fields = [
            "id",
            "organization_id",
            "customer_type",
            "prefix",
            "current_number",
            "max_number",
            "reset_daily",
            "reset_time",
            "last_reset_at",
            "wrap_at_max",
            "priority_multiplier",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class QueueSettingUpdateSerializer(serializers.Serializer):
    """
    PATCH queue/settings/ body. customer_type selects the row; the rest is a partial patch.
    """
    customer_type = serializers.ChoiceField(choices=CustomerType.choices)

    prefix = serializers.RegexField(r"^[A-Za-z0-9]{1,5}$", required=False)
    max_number = serializers.IntegerField(required=False, min_value=1, max_value=99999)
    reset_daily = serializers.BooleanField(required=False)
    reset_time = serializers.TimeField(required=False)
    wrap_at_max = serializers.BooleanField(required=False)
    priority_multiplier = serializers.DecimalField(
        required=False,
        max_digits=4,
        decimal_places=2,
        min_value=Decimal("0.10"),
        max_value=Decimal("10.00"),
    )
    is_active = serializers.BooleanField(required=False)

    def validate_prefix(self, value):
        return value.upper()


class QueueResetSerializer(serializers.Serializer):
    # omitted -> reset every customer type of the organization
    customer_type = serializers.ChoiceField(choices=CustomerType.choices, required=False, allow_null=True)

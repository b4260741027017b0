# qm_core/counters/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from qm_core.counters.models import Counter


class CounterSerializer(serializers.ModelSerializer):
    assigned_staff_id = serializers.IntegerField(read_only=True, allow_null=True)
    assigned_staff_username = serializers.CharField(source="assigned_staff.username", read_only=True, default=None)

    class Meta:
        model = Counter
        fields = [
            "id",
            "organization_id",
            "name",
            "description",
            "is_active",
            "assigned_staff_id",
            "assigned_staff_username",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CounterCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    is_active = serializers.BooleanField(required=False, default=True)
    assigned_staff_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class CounterUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, max_length=50)
    description = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one of: name, description.")
        return attrs


class CounterAssignSerializer(serializers.Serializer):
    staff_id = serializers.IntegerField()


class CounterSelectSerializer(serializers.Serializer):
    counter_id = serializers.UUIDField()

# qm_core/organizations/api/serializers.py
from __future__ import annotations

import zoneinfo

from rest_framework import serializers

from qm_core.organizations.models import Organization

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class OrganizationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = [
            "id",
            "name",
            "code",
            "settings",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OpeningHoursSerializer(serializers.Serializer):
    open = serializers.TimeField(format="%H:%M", input_formats=["%H:%M"])
    close = serializers.TimeField(format="%H:%M", input_formats=["%H:%M"])

    def validate(self, attrs):
        if attrs["close"] <= attrs["open"]:
            raise serializers.ValidationError("close must be after open.")
        return attrs


class OrganizationSettingsSerializer(serializers.Serializer):
    """
    Documented organization settings. Unknown keys are rejected.
    """
    timezone = serializers.CharField(required=False, max_length=64)
    operating_hours = serializers.DictField(child=OpeningHoursSerializer(), required=False)
    holidays = serializers.ListField(child=serializers.DateField(), required=False)
    max_tokens_per_day = serializers.IntegerField(required=False, min_value=1)
    display_message = serializers.CharField(required=False, max_length=255, allow_blank=True)

    def to_internal_value(self, data):
        if isinstance(data, dict):
            unknown = sorted(set(data) - set(self.fields))
            if unknown:
                raise serializers.ValidationError({k: "Unknown setting." for k in unknown})
        return super().to_internal_value(data)

    def validate_timezone(self, value):
        if value not in zoneinfo.available_timezones():
            raise serializers.ValidationError("Unknown timezone.")
        return value

    def validate_operating_hours(self, value):
        bad = sorted(set(value) - set(WEEKDAYS))
        if bad:
            raise serializers.ValidationError(f"Unknown weekday(s): {bad}. Allowed: {list(WEEKDAYS)}")
        return value


class OrganizationCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    code = serializers.SlugField(max_length=64)
    settings = OrganizationSettingsSerializer(required=False)
    provision_queues = serializers.BooleanField(required=False, default=True)


class OrganizationSettingsUpdateSerializer(serializers.Serializer):
    settings = OrganizationSettingsSerializer()


class OrganizationActiveUpdateSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()

# qm_core/iam/api/serializers.py
from __future__ import annotations

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from qm_core.iam.models import ServiceSession, UserProfile, UserRole


class StaffSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="user.id", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    profile_id = serializers.UUIDField(source="id", read_only=True)

    class Meta:
        model = UserProfile
        fields = [
            "id",
            "profile_id",
            "username",
            "email",
            "organization_id",
            "role",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StaffCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True, min_length=8)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    role = serializers.ChoiceField(choices=UserRole.choices, default=UserRole.STAFF)

    def validate_password(self, value):
        validate_password(value)
        return value


class StaffUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=UserRole.choices, required=False)
    is_active = serializers.BooleanField(required=False)
    email = serializers.EmailField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one of: role, is_active, email.")
        return attrs


class PasswordChangeSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8)
    confirm_password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        if attrs["new_password"] != attrs["confirm_password"]:
            raise serializers.ValidationError({"confirm_password": "Passwords do not match."})
        return attrs


class PasswordResetSerializer(serializers.Serializer):
    new_password = serializers.CharField(write_only=True, min_length=8)


class ServiceSessionSerializer(serializers.ModelSerializer):
    staff_username = serializers.CharField(source="staff.username", read_only=True)
    duration_minutes = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = ServiceSession
        fields = [
            "id",
            "organization_id",
            "staff_id",
            "staff_username",
            "started_at",
            "ended_at",
            "tokens_served",
            "average_service_time",
            "duration_minutes",
            "notes",
        ]
        read_only_fields = fields


class SessionEndSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class SessionStatsSerializer(serializers.Serializer):
    total_sessions = serializers.IntegerField()
    active_sessions = serializers.IntegerField()
    total_tokens_served = serializers.IntegerField()
    total_duration = serializers.IntegerField()
    average_service_time = serializers.IntegerField()

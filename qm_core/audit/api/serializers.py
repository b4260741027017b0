# qm_core/audit/api/serializers.py
from rest_framework import serializers

from qm_core.audit.models import SystemLog


class SystemLogSerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    actor_user_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = SystemLog
        fields = [
            "id",
            "organization_id",
            "action",
            "entity_type",
            "entity_id",
            "actor_user_id",
            "timestamp",
            "details",
        ]
        read_only_fields = fields

import datetime
import uuid
from decimal import Decimal

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="QueueSetting",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("organization_id", models.UUIDField(db_index=True)),
                (
                    "customer_type",
                    models.CharField(
                        choices=[("instant", "Instant"), ("browser", "Browser"), ("retail", "Retail")],
                        max_length=16,
                    ),
                ),
                ("prefix", models.CharField(max_length=5)),
                ("current_number", models.PositiveIntegerField(default=0)),
                (
                    "max_number",
                    models.PositiveIntegerField(
                        default=999,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("reset_daily", models.BooleanField(default=True)),
                ("reset_time", models.TimeField(default=datetime.time(0, 0))),
                ("last_reset_at", models.DateTimeField(blank=True, null=True)),
                ("wrap_at_max", models.BooleanField(default=True)),
                (
                    "priority_multiplier",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("1.00"),
                        max_digits=4,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.10")),
                            django.core.validators.MaxValueValidator(Decimal("10.00")),
                        ],
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "db_table": "queues_queue_setting",
                "ordering": ["customer_type"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("organization_id", "customer_type"),
                        name="uq_queue_setting_org_type",
                    ),
                ],
            },
        ),
    ]

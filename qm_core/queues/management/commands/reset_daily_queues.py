# qm_core/queues/management/commands/reset_daily_queues.py

from django.core.management.base import BaseCommand

from qm_core.queues.services import QueueSettingService


class Command(BaseCommand):
    help = "Apply due daily queue resets (safe to run every few minutes from cron)."

    def handle(self, *args, **options):
        count = QueueSettingService.apply_due_resets()
        self.stdout.write(self.style.SUCCESS(f"Daily resets applied: {count}"))

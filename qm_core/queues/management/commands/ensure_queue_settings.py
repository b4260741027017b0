# qm_core/queues/management/commands/ensure_queue_settings.py

from django.core.management.base import BaseCommand, CommandError

from qm_core.organizations.selectors import get_by_code_or_none, organization_qs
from qm_core.queues.services import QueueSettingService


class Command(BaseCommand):
    help = "Provision default queue settings (instant/browser/retail) for organizations (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--organization", help="Organization code. Defaults to every organization.")

    def handle(self, *args, **options):
        code = options.get("organization")
        if code:
            org = get_by_code_or_none(code=code)
            if org is None:
                raise CommandError(f"Unknown organization code: {code}")
            orgs = [org]
        else:
            orgs = list(organization_qs())

        for org in orgs:
            rows = QueueSettingService.provision_defaults(organization_id=org.id)
            self.stdout.write(f"{org.code}: {', '.join(r.customer_type for r in rows)}")

        self.stdout.write(self.style.SUCCESS(f"Queue settings ensured for {len(orgs)} organization(s)."))

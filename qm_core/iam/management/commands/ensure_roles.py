# qm_core/iam/management/commands/ensure_roles.py

from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from qm_core.iam.models import UserProfile, UserRole


class Command(BaseCommand):
    help = "Ensure role groups exist and every profile is in the group of its role (idempotent)."

    def handle(self, *args, **options):
        created = 0
        groups = {}
        for name in UserRole.values:
            groups[name], was_created = Group.objects.get_or_create(name=name)
            created += 1 if was_created else 0

        synced = 0
        for profile in UserProfile.objects.select_related("user"):
            group = groups[profile.role]
            if not profile.user.groups.filter(pk=group.pk).exists():
                profile.user.groups.add(group)
                synced += 1

        self.stdout.write(self.style.SUCCESS(f"Roles ensured. Newly created: {created}. Profiles synced: {synced}"))

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create role groups and put every user into the group of its role"

    def handle(self, *args, **options):
        groups = {}
        for role in UserRole.values:
            groups[role], created = Group.objects.get_or_create(name=role)
            self.stdout.write(f"{role}: {'created' if created else 'exists'}")

        assigned = 0
        for user in get_user_model().objects.prefetch_related("groups"):
            group = groups.get(user.role)
            if group and group not in user.groups.all():
                user.groups.add(group)
                assigned += 1
        self.stdout.write(self.style.SUCCESS(f"Users assigned to role groups: {assigned}"))

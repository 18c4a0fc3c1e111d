from django.core.management.base import BaseCommand, CommandError

from apps.loyalty.services import find_mismatches


class Command(BaseCommand):
    help = "Compare every cached loyalty balance with the sum of its ledger entries."

    def handle(self, *args, **options):
        mismatches = 0
        for user, cached, ledger in find_mismatches():
            mismatches += 1
            self.stdout.write(self.style.WARNING(f"{user.username}: cached={cached} ledger={ledger}"))

        if mismatches:
            raise CommandError(f"Loyalty balances out of sync: {mismatches}")
        self.stdout.write(self.style.SUCCESS("Loyalty balances match the ledger"))

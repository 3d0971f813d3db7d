"""
Charge every paid subscription whose billing period has ended.

Usage:
    python manage.py charge_subscriptions
    python manage.py charge_subscriptions --at 2024-04-01T00:00:00Z
"""

from datetime import datetime

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError

from fieldops.billing.cycle import charge_due_subscriptions


class Command(BaseCommand):
    help = "Renew paid subscriptions whose billing period has ended"

    def add_arguments(self, parser):
        parser.add_argument(
            "--at",
            dest="at",
            help="Evaluate as of this ISO 8601 instant instead of now",
        )

    def handle(self, *args, **options):
        now = None
        if options["at"]:
            try:
                now = datetime.fromisoformat(options["at"])
            except ValueError as exc:
                msg = f"Invalid --at value: {options['at']}"
                raise CommandError(msg) from exc

        summary = charge_due_subscriptions(now=now)

        for row in summary.results:
            line = f"  org {row['org_id']}: {row['status']} charged={row['charged']}"
            if row["ok"]:
                self.stdout.write(self.style.SUCCESS(line))
            else:
                self.stdout.write(self.style.WARNING(line))

        self.stdout.write(
            f"Processed {summary.processed} subscription(s): "
            f"{summary.charged} renewed, {summary.failed} past due",
        )

"""
Management command to seed the billing plan catalog.

Creates the four catalog plans (basic, pro, business, enterprise) from the
built-in defaults in ``fieldops.billing.plans``.

Usage:
    python manage.py seed_plans              # Create missing plans
    python manage.py seed_plans --force      # Reset existing plans to defaults
"""

from django.core.management.base import BaseCommand

from fieldops.billing.models import Plan
from fieldops.billing.plans import PLAN_ORDER
from fieldops.billing.plans import plan_defaults


class Command(BaseCommand):
    help = "Seed billing plans from the built-in defaults"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Overwrite existing plans with the default configuration",
        )

    def handle(self, *args, **options):
        force_update = options["force"]

        for plan_code in PLAN_ORDER:
            config = plan_defaults(plan_code)
            plan, created = Plan.objects.get_or_create(
                code=plan_code,
                defaults=config,
            )

            if created:
                self.stdout.write(
                    self.style.SUCCESS(f"  Created: {plan.name}"),
                )
            elif force_update:
                for field, value in config.items():
                    setattr(plan, field, value)
                plan.save()
                self.stdout.write(
                    self.style.SUCCESS(f"  Updated: {plan.name}"),
                )
            else:
                self.stdout.write(
                    f"  Exists: {plan.name} (use --force to reset to defaults)",
                )

        self.stdout.write(f"\nTotal plans: {Plan.objects.count()}")

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models

PLAN_CHOICES = [
    ("basic", "Basic"),
    ("pro", "Pro"),
    ("business", "Business"),
    ("enterprise", "Enterprise"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("organizations", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                (
                    "code",
                    models.CharField(
                        choices=PLAN_CHOICES,
                        help_text="Unique plan identifier, also used as PK.",
                        max_length=20,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Display name for the plan.",
                        max_length=50,
                    ),
                ),
                (
                    "monthly_price",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="Monthly price in RUB. 0 = free or individually contracted.",
                        max_digits=14,
                    ),
                ),
                ("projects_limit", models.IntegerField(blank=True, null=True)),
                ("seats_limit", models.IntegerField(blank=True, null=True)),
                ("tasks_month_limit", models.IntegerField(blank=True, null=True)),
                (
                    "public_tasks_month_limit",
                    models.IntegerField(blank=True, null=True),
                ),
                ("storage_included_gb", models.IntegerField(blank=True, null=True)),
                (
                    "storage_overage_price_per_gb",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="RUB per GB per month above the included storage.",
                        max_digits=14,
                    ),
                ),
                ("storage_package_gb", models.IntegerField(blank=True, null=True)),
                (
                    "storage_package_price",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=14,
                        null=True,
                    ),
                ),
                ("features", models.JSONField(blank=True, default=list)),
                (
                    "display_order",
                    models.IntegerField(
                        default=0,
                        help_text="Order in which plans appear on the plans page.",
                    ),
                ),
            ],
            options={
                "ordering": ["display_order"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                (
                    "plan",
                    models.CharField(
                        choices=PLAN_CHOICES,
                        default="basic",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("trial", "Trial"),
                            ("suspended", "Suspended"),
                            ("past_due", "Past Due"),
                            ("inactive", "Inactive"),
                        ],
                        default="inactive",
                        max_length=20,
                    ),
                ),
                (
                    "period_start",
                    models.DateTimeField(
                        blank=True,
                        help_text="Start of current billing month (UTC).",
                        null=True,
                    ),
                ),
                (
                    "period_end",
                    models.DateTimeField(
                        blank=True,
                        help_text="Start of the next billing month (UTC, exclusive).",
                        null=True,
                    ),
                ),
                (
                    "grace_until",
                    models.DateTimeField(
                        blank=True,
                        help_text="Write access is granted until this instant even if unpaid.",
                        null=True,
                    ),
                ),
                (
                    "grace_used_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Last grace activation. One activation per calendar month.",
                        null=True,
                    ),
                ),
                (
                    "pending_plan",
                    models.CharField(
                        blank=True,
                        choices=PLAN_CHOICES,
                        default="",
                        max_length=20,
                    ),
                ),
                (
                    "pending_plan_effective_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "pending_plan_requested_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "note",
                    models.TextField(
                        blank=True,
                        help_text="Invoice number or comments.",
                    ),
                ),
                ("updated_by_email", models.EmailField(blank=True, max_length=254)),
                (
                    "org",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["status"],
                        name="billing_sub_status_7c1a2e_idx",
                    ),
                    models.Index(
                        fields=["period_end"],
                        name="billing_sub_period__4b9d0f_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("period_start__isnull", True),
                            ("period_end__isnull", True),
                            ("period_start__lt", models.F("period_end")),
                            _connector="OR",
                        ),
                        name="subscription_period_start_before_end",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                (
                    "balance",
                    models.DecimalField(decimal_places=2, default=0, max_digits=14),
                ),
                ("currency", models.CharField(default="RUB", max_length=3)),
                (
                    "org",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallet",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="WalletTransaction",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                (
                    "kind",
                    models.CharField(
                        choices=[("credit", "Credit"), ("debit", "Debit")],
                        max_length=10,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("subscription", "Subscription"),
                            ("plan_change", "Plan change"),
                            ("manual", "Manual adjustment"),
                            ("storage_overage", "Storage overage"),
                            ("storage_package", "Storage package"),
                            ("bid", "Bid"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "balance_after",
                    models.DecimalField(decimal_places=2, max_digits=14),
                ),
                (
                    "meta",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        encoder=django.core.serializers.json.DjangoJSONEncoder,
                    ),
                ),
                ("created", models.DateTimeField(auto_now_add=True)),
                (
                    "org",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallet_transactions",
                        to="organizations.organization",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="billing.wallet",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [
                    models.Index(
                        fields=["org", "-created"],
                        name="billing_wal_org_id_3e8f5a_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PlanChange",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created",
                    model_utils.fields.AutoCreatedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="created",
                    ),
                ),
                (
                    "modified",
                    model_utils.fields.AutoLastModifiedField(
                        default=django.utils.timezone.now,
                        editable=False,
                        verbose_name="modified",
                    ),
                ),
                (
                    "old_plan",
                    models.CharField(choices=PLAN_CHOICES, max_length=20),
                ),
                (
                    "new_plan",
                    models.CharField(choices=PLAN_CHOICES, max_length=20),
                ),
                (
                    "timing",
                    models.CharField(
                        choices=[
                            ("immediate", "Immediate"),
                            ("period_end", "At period end"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "effective_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the new plan took or takes effect.",
                        null=True,
                    ),
                ),
                (
                    "charged",
                    models.DecimalField(decimal_places=2, default=0, max_digits=14),
                ),
                (
                    "credited",
                    models.DecimalField(decimal_places=2, default=0, max_digits=14),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="plan_changes",
                        to="billing.subscription",
                    ),
                ),
            ],
            options={
                "ordering": ["-created"],
            },
        ),
    ]

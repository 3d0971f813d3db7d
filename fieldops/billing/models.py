"""
Billing models for the FieldOps organization billing engine.

Key design decisions:
- Plan is a catalog table (basic, pro, business, enterprise). Rows may be
  missing or partially filled; ``billing.plans`` normalizes them against the
  built-in defaults, so nothing reads Plan rows directly for pricing.
- Subscription is 1:1 with Organization and stores the plan code, not an FK,
  so a subscription stays valid even if a catalog row is edited or absent.
- Wallet is 1:1 with Organization. Its balance is only ever changed by the
  functions in ``billing.ledger``, each of which appends a WalletTransaction.
- WalletTransaction is append-only: summing ``amount`` over an org's entries
  in id order reproduces the wallet balance.

Relationship: Organization ──1:1── Subscription
              Organization ──1:1── Wallet ──1:N── WalletTransaction
              Organization ──1:N── StoragePackage
"""

from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from model_utils.models import TimeStampedModel

from fieldops.billing.constants import DEFAULT_CURRENCY
from fieldops.billing.constants import PlanChangeTiming
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import StoragePackageStatus
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.constants import TransactionKind
from fieldops.billing.constants import TransactionSource

MONEY_DIGITS = 14


class Plan(models.Model):
    """
    Catalog row for a pricing plan.

    Admins edit prices and limits here. Null or negative values fall back
    to the built-in defaults in ``billing.plans``.
    Populated by ``manage.py seed_plans``.
    """

    code = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=50, help_text="Display name for the plan.")

    monthly_price = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        default=0,
        help_text="Monthly price in RUB. 0 = free or individually contracted.",
    )

    # Limits (null = built-in default)
    projects_limit = models.IntegerField(null=True, blank=True)
    seats_limit = models.IntegerField(null=True, blank=True)
    tasks_month_limit = models.IntegerField(null=True, blank=True)
    public_tasks_month_limit = models.IntegerField(null=True, blank=True)
    storage_included_gb = models.IntegerField(null=True, blank=True)

    # Storage pricing
    storage_overage_price_per_gb = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        default=0,
        help_text="RUB per GB per month above the included storage.",
    )
    storage_package_gb = models.IntegerField(null=True, blank=True)
    storage_package_price = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        null=True,
        blank=True,
    )

    features = models.JSONField(default=list, blank=True)

    display_order = models.IntegerField(
        default=0,
        help_text="Order in which plans appear on the plans page.",
    )

    class Meta:
        ordering = ["display_order"]

    def __str__(self) -> str:
        return self.name


class Subscription(TimeStampedModel):
    """
    Billing state for an organization.

    Created implicitly on the first write-access check (basic/inactive) via
    ``billing.subscriptions.ensure_subscription``. Mutated only by the
    billing cycle processor, the grace period manager and the plan change
    engine.
    """

    org = models.OneToOneField(
        "organizations.Organization",
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    plan = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        default=PlanCode.BASIC,
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.INACTIVE,
    )

    # Billing period tracking
    period_start = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of current billing month (UTC).",
    )
    period_end = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the next billing month (UTC, exclusive).",
    )

    # Grace bookkeeping
    grace_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Write access is granted until this instant even if unpaid.",
    )
    grace_used_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last grace activation. One activation per calendar month.",
    )

    # Deferred plan change
    pending_plan = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        blank=True,
        default="",
    )
    pending_plan_effective_at = models.DateTimeField(null=True, blank=True)
    pending_plan_requested_at = models.DateTimeField(null=True, blank=True)

    note = models.TextField(blank=True, help_text="Invoice number or comments.")
    updated_by_email = models.EmailField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="billing_sub_status_7c1a2e_idx"),
            models.Index(
                fields=["period_end"],
                name="billing_sub_period__4b9d0f_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(period_start__isnull=True)
                    | models.Q(period_end__isnull=True)
                    | models.Q(period_start__lt=models.F("period_end"))
                ),
                name="subscription_period_start_before_end",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.org} - {self.plan} ({self.status})"

    def clean(self):
        super().clean()
        if (
            self.period_start
            and self.period_end
            and self.period_start >= self.period_end
        ):
            raise ValidationError(
                {"period_end": "Billing period must end after it starts."},
            )

    @property
    def has_pending_plan(self) -> bool:
        return bool(self.pending_plan)

    def clear_pending_plan(self) -> None:
        self.pending_plan = ""
        self.pending_plan_effective_at = None
        self.pending_plan_requested_at = None


class Wallet(TimeStampedModel):
    """
    Prepaid RUB balance of an organization.

    Never write ``balance`` directly: use ``billing.ledger`` so that every
    change leaves a WalletTransaction behind.
    """

    org = models.OneToOneField(
        "organizations.Organization",
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        default=0,
    )
    currency = models.CharField(max_length=3, default=DEFAULT_CURRENCY)

    def __str__(self) -> str:
        return f"{self.org}: {self.balance} {self.currency}"


APPEND_ONLY_MESSAGE = "Wallet transactions are append-only."


class WalletTransactionQuerySet(models.QuerySet):
    """Queryset that refuses bulk rewrites of ledger entries."""

    def update(self, **kwargs):
        raise ValueError(APPEND_ONLY_MESSAGE)

    def delete(self):
        raise ValueError(APPEND_ONLY_MESSAGE)


class WalletTransaction(models.Model):
    """
    Append-only ledger entry.

    ``amount`` is signed: positive for credits, negative for debits.
    The auto-increment id is the ordering sequence within a wallet.
    Rows can be inserted but never updated or deleted, singly or in bulk,
    and they keep their wallet and organization from being deleted.
    """

    org = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="wallet_transactions",
    )
    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    amount = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=2)
    kind = models.CharField(max_length=10, choices=TransactionKind.choices)
    source = models.CharField(max_length=32, choices=TransactionSource.choices)
    balance_after = models.DecimalField(max_digits=MONEY_DIGITS, decimal_places=2)
    meta = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created = models.DateTimeField(auto_now_add=True)

    objects = WalletTransactionQuerySet.as_manager()

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(
                fields=["org", "-created"],
                name="billing_wal_org_id_3e8f5a_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.org}: {self.kind} {self.amount} ({self.source})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError(APPEND_ONLY_MESSAGE)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(APPEND_ONLY_MESSAGE)


class PlanChange(TimeStampedModel):
    """
    Audit log for plan changes.

    Records every immediate switch and every scheduled switch, with the
    money that moved, for billing reconciliation and support history.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="plan_changes",
    )
    old_plan = models.CharField(max_length=20, choices=PlanCode.choices)
    new_plan = models.CharField(max_length=20, choices=PlanCode.choices)
    timing = models.CharField(max_length=20, choices=PlanChangeTiming.choices)
    effective_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the new plan took or takes effect.",
    )
    charged = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        default=0,
    )
    credited = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        default=0,
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return f"{self.subscription.org}: {self.old_plan} → {self.new_plan}"


class StoragePackage(TimeStampedModel):
    """
    Extra storage bought from the wallet for one calendar month.

    Created by ``billing.storage.purchase_storage_package``; one row per
    purchased package.
    """

    org = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.CASCADE,
        related_name="storage_packages",
    )
    package_gb = models.PositiveIntegerField()
    monthly_price = models.DecimalField(
        max_digits=MONEY_DIGITS,
        decimal_places=2,
        help_text="Full-month catalog price in RUB at purchase time.",
    )
    period_start = models.DateTimeField()
    period_end = models.DateTimeField()
    status = models.CharField(
        max_length=20,
        choices=StoragePackageStatus.choices,
        default=StoragePackageStatus.ACTIVE,
    )
    auto_renew = models.BooleanField(default=True)

    class Meta:
        ordering = ["period_start", "id"]
        indexes = [
            models.Index(
                fields=["org", "period_end"],
                name="billing_sto_org_id_9a2c41_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.org}: {self.package_gb} GB until {self.period_end:%Y-%m-%d}"

"""
Billing constants for the organization subscription engine.

These enums define the plan codes, subscription lifecycle states and ledger
vocabulary used throughout the billing module. PlanCode values serve as
primary keys for the Plan catalog table and are stored verbatim on
Subscription rows.
"""

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanCode(models.TextChoices):
    """
    Plan codes used as primary key for the Plan model.

    Basic and Enterprise are priced at zero: Basic is the free tier, and
    Enterprise is invoiced under an individual contract outside the wallet.
    """

    BASIC = "basic", _("Basic")
    PRO = "pro", _("Pro")
    BUSINESS = "business", _("Business")
    ENTERPRISE = "enterprise", _("Enterprise")


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Typical flow:
        INACTIVE → ACTIVE (first successful charge or plan purchase)
        INACTIVE → TRIAL (granted by an administrator)
        ACTIVE → PAST_DUE (monthly charge failed) → ACTIVE (plan re-purchased)
        any → SUSPENDED (administrative action)
    """

    ACTIVE = "active", _("Active")
    TRIAL = "trial", _("Trial")
    SUSPENDED = "suspended", _("Suspended")
    PAST_DUE = "past_due", _("Past Due")
    INACTIVE = "inactive", _("Inactive")


class StoragePackageStatus(models.TextChoices):
    ACTIVE = "active", _("Active")
    EXPIRED = "expired", _("Expired")
    CANCELED = "canceled", _("Canceled")


class PlanChangeTiming(models.TextChoices):
    IMMEDIATE = "immediate", _("Immediate")
    PERIOD_END = "period_end", _("At period end")


class TransactionKind(models.TextChoices):
    CREDIT = "credit", _("Credit")
    DEBIT = "debit", _("Debit")


class TransactionSource(models.TextChoices):
    """Why a wallet balance moved. Stored on every ledger entry."""

    SUBSCRIPTION = "subscription", _("Subscription")
    PLAN_CHANGE = "plan_change", _("Plan change")
    MANUAL = "manual", _("Manual adjustment")
    STORAGE_OVERAGE = "storage_overage", _("Storage overage")
    STORAGE_PACKAGE = "storage_package", _("Storage package")
    BID = "bid", _("Bid")


# Grace period length once activated
GRACE_HOURS = 72

# Maximum length of an administrator-granted trial
TRIAL_DURATION_DAYS = 10

DEFAULT_CURRENCY = "RUB"

# Currency minor units
TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

GRACE_ALREADY_USED = "GRACE_ALREADY_USED"
SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
INSUFFICIENT_FUNDS = "insufficient_funds"
PACKAGE_NOT_AVAILABLE = "PACKAGE_NOT_AVAILABLE"

REASON_GRACE_IN_USE = "grace period in use"
REASON_INSUFFICIENT_FUNDS = "insufficient funds for subscription"

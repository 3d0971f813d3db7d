"""
Billing exceptions.

Only conditions that are fatal to a call are exceptions. Expected business
outcomes (a debit that finds too little money, a grace period that was
already spent this month) are returned as values on the result dataclasses
so callers can render a top-up prompt without try/except.
"""

from fieldops.billing.constants import PACKAGE_NOT_AVAILABLE
from fieldops.billing.constants import SUBSCRIPTION_NOT_FOUND


class BillingError(Exception):
    """Base exception for billing-related errors."""

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class SubscriptionNotFoundError(BillingError):
    """Raised when a mutating call targets an org without a subscription."""

    def __init__(self, org_id=None):
        self.org_id = org_id
        super().__init__(
            f"No subscription found for organization {org_id}.",
            code=SUBSCRIPTION_NOT_FOUND,
        )


class UnknownPlanError(BillingError):
    """Raised when a plan code is not part of the catalog."""

    def __init__(self, plan: str):
        self.plan = plan
        super().__init__(f"Unknown plan: {plan!r}", code="unknown_plan")


class InvalidPlanChangeError(BillingError):
    """Raised when a plan change request is malformed."""

    def __init__(self, detail: str):
        super().__init__(detail, code="invalid_plan_change")


class TransactionUnsupportedError(BillingError):
    """
    The database refused to open a transaction.

    Caught by ``ledger.run_in_transaction`` which then falls back to
    sequential writes.
    """

    def __init__(self, detail: str = "Database transactions are not supported."):
        super().__init__(detail, code="transaction_unsupported")


class StoragePackageUnavailableError(BillingError):
    """Raised when the org's plan does not sell extra storage packages."""

    def __init__(self, plan: str):
        self.plan = plan
        super().__init__(
            f"Storage packages are not available on plan {plan!r}.",
            code=PACKAGE_NOT_AVAILABLE,
        )

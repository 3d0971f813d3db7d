"""
Public call surface of the billing engine.

Request handlers and other apps import from here rather than from the
individual modules.
"""

from fieldops.billing.access import AccessDecision
from fieldops.billing.access import evaluate_read_access
from fieldops.billing.access import evaluate_write_access
from fieldops.billing.cycle import ChargeResult
from fieldops.billing.cycle import SweepSummary
from fieldops.billing.cycle import charge_due_subscriptions
from fieldops.billing.cycle import charge_subscription_period
from fieldops.billing.grace import GraceActivation
from fieldops.billing.grace import activate_grace_period
from fieldops.billing.ledger import DebitResult
from fieldops.billing.ledger import adjust_balance
from fieldops.billing.ledger import credit
from fieldops.billing.ledger import debit
from fieldops.billing.ledger import ensure_wallet
from fieldops.billing.ledger import list_transactions
from fieldops.billing.plan_changes import PlanChangePreview
from fieldops.billing.plan_changes import PlanChangeResult
from fieldops.billing.plan_changes import cancel_pending_plan_change
from fieldops.billing.plan_changes import change_plan
from fieldops.billing.plan_changes import preview_plan_change
from fieldops.billing.plans import get_all_plan_configs
from fieldops.billing.plans import get_plan_config
from fieldops.billing.storage import StoragePurchase
from fieldops.billing.storage import list_active_packages
from fieldops.billing.storage import purchase_storage_package
from fieldops.billing.subscriptions import start_trial

__all__ = [
    "AccessDecision",
    "ChargeResult",
    "DebitResult",
    "GraceActivation",
    "PlanChangePreview",
    "PlanChangeResult",
    "StoragePurchase",
    "SweepSummary",
    "activate_grace_period",
    "adjust_balance",
    "cancel_pending_plan_change",
    "change_plan",
    "charge_due_subscriptions",
    "charge_subscription_period",
    "credit",
    "debit",
    "ensure_wallet",
    "evaluate_read_access",
    "evaluate_write_access",
    "get_all_plan_configs",
    "get_plan_config",
    "list_active_packages",
    "list_transactions",
    "preview_plan_change",
    "purchase_storage_package",
    "start_trial",
]

"""
Plan change engine.

Moves an organization between catalog plans, either immediately or at the
end of the current billing period.

Key design decisions:
- Immediate changes during a paid, active period are prorated: the org pays
  (or is refunded) the price difference for the remaining share of the
  period, and the period bounds are kept.
- Immediate changes without a paid, active period are a fresh purchase of
  the new plan for the current calendar month.
- Period-end changes only record the pending plan; no money moves until the
  billing cycle processor applies it at renewal time.
- A change whose charge the wallet cannot cover fails as a whole and leaves
  the subscription untouched.
- Every applied or scheduled change is audited via the PlanChange model.

Preview and apply share ``compute_proration`` so the numbers shown to the
user are the numbers charged.

Usage:
    preview = preview_plan_change(org.id, PlanCode.BUSINESS, "immediate")
    if preview.will_fail:
        # ask for a top-up of preview.charge - preview.balance

    result = change_plan(org.id, PlanCode.BUSINESS, "immediate", actor=email)
    if not result.success:
        # result.error == "insufficient_funds", see result.required/available
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from fieldops.billing.constants import INSUFFICIENT_FUNDS
from fieldops.billing.constants import ZERO
from fieldops.billing.constants import PlanChangeTiming
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.constants import TransactionSource
from fieldops.billing.exceptions import InvalidPlanChangeError
from fieldops.billing.exceptions import UnknownPlanError
from fieldops.billing.ledger import credit
from fieldops.billing.ledger import debit
from fieldops.billing.ledger import get_balance
from fieldops.billing.ledger import run_in_transaction
from fieldops.billing.models import PlanChange
from fieldops.billing.models import Subscription
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import month_bounds
from fieldops.billing.periods import remaining_fraction
from fieldops.billing.periods import round2
from fieldops.billing.periods import utc_now
from fieldops.billing.plans import get_plan_config
from fieldops.billing.plans import validate_plan_code
from fieldops.billing.subscriptions import ensure_subscription
from fieldops.billing.subscriptions import get_subscription
from fieldops.billing.subscriptions import lock_subscription

logger = logging.getLogger(__name__)


class PlanChangeType(str, Enum):
    """Types of plan changes."""

    UPGRADE = "upgrade"  # Moving to a higher-priced plan
    DOWNGRADE = "downgrade"  # Moving to a lower-priced plan
    LATERAL = "lateral"  # Same price, including re-purchasing the same plan


@dataclass(frozen=True)
class Proration:
    """Money and period bounds for an immediate change."""

    charge: Decimal
    credit: Decimal
    period_start: datetime
    period_end: datetime
    prorated: bool


@dataclass(frozen=True)
class PlanChangePreview:
    current_plan: str
    next_plan: str
    timing: str
    change_type: PlanChangeType
    effective_at: datetime
    charge: Decimal
    credit: Decimal
    balance: Decimal
    will_fail: bool
    period_start: datetime | None = None
    period_end: datetime | None = None


@dataclass
class PlanChangeResult:
    """Result of a plan change operation."""

    success: bool
    subscription: Subscription
    old_plan: str
    new_plan: str
    timing: str
    effective_at: datetime | None = None
    charged: Decimal = ZERO
    credited: Decimal = ZERO
    error: str | None = None
    required: Decimal | None = None
    available: Decimal | None = None


def get_change_type(current_price: Decimal, next_price: Decimal) -> PlanChangeType:
    if next_price > current_price:
        return PlanChangeType.UPGRADE
    if next_price < current_price:
        return PlanChangeType.DOWNGRADE
    return PlanChangeType.LATERAL


def has_active_paid_period(
    subscription: Subscription,
    current_price: Decimal,
    now: datetime,
) -> bool:
    return (
        subscription.status == SubscriptionStatus.ACTIVE
        and current_price > 0
        and subscription.period_start is not None
        and subscription.period_end is not None
        and as_utc(subscription.period_end) > now
    )


def compute_proration(
    subscription: Subscription,
    current_price: Decimal,
    next_price: Decimal,
    now: datetime,
) -> Proration:
    """
    Price an immediate switch to a plan costing ``next_price``.

    Pure: reads ``subscription`` but does not change it.
    """
    if not has_active_paid_period(subscription, current_price, now):
        period_start, period_end = month_bounds(now)
        return Proration(
            charge=round2(next_price),
            credit=ZERO,
            period_start=period_start,
            period_end=period_end,
            prorated=False,
        )

    period_start = as_utc(subscription.period_start)
    period_end = as_utc(subscription.period_end)
    charge, refund = prorate(current_price, next_price, period_start, period_end, now)
    return Proration(
        charge=charge,
        credit=refund,
        period_start=period_start,
        period_end=period_end,
        prorated=True,
    )


def prorate(
    current_price: Decimal,
    next_price: Decimal,
    period_start: datetime,
    period_end: datetime,
    now: datetime,
) -> tuple[Decimal, Decimal]:
    """
    Return ``(charge, credit)`` for switching prices with part of a period left.

    At most one of the two is non-zero. At ``period_start`` the result is
    the full price difference; at ``period_end`` it is zero.
    """
    fraction = remaining_fraction(period_start, period_end, now)
    delta = round2(next_price * fraction - current_price * fraction)
    if delta >= 0:
        return delta, ZERO
    return ZERO, round2(-delta)


def _validate_request(next_plan: str, timing: str) -> tuple[str, str]:
    try:
        next_plan = validate_plan_code(next_plan)
    except UnknownPlanError as exc:
        raise InvalidPlanChangeError(exc.detail) from exc
    if timing not in PlanChangeTiming.values:
        msg = f"Unknown plan change timing: {timing!r}"
        raise InvalidPlanChangeError(msg)
    return next_plan, str(timing)


def _defers(subscription: Subscription, timing: str, now: datetime) -> bool:
    # A period-end change for a period that is already over runs immediately.
    return (
        timing == PlanChangeTiming.PERIOD_END
        and subscription.period_end is not None
        and as_utc(subscription.period_end) > now
    )


def preview_plan_change(
    org_id,
    next_plan: str,
    timing: str,
    now: datetime | None = None,
) -> PlanChangePreview:
    """
    Show what ``change_plan`` would do, without writing anything.

    The wallet is read but never created.
    """
    now = as_utc(now) if now is not None else utc_now()
    next_plan, timing = _validate_request(next_plan, timing)
    subscription = get_subscription(org_id) or Subscription(
        org_id=org_id,
        plan=PlanCode.BASIC,
        status=SubscriptionStatus.INACTIVE,
    )
    current_price = get_plan_config(subscription.plan).monthly_price
    next_price = get_plan_config(next_plan).monthly_price
    balance = get_balance(org_id)
    change_type = get_change_type(current_price, next_price)

    if _defers(subscription, timing, now):
        return PlanChangePreview(
            current_plan=subscription.plan,
            next_plan=next_plan,
            timing=PlanChangeTiming.PERIOD_END,
            change_type=change_type,
            effective_at=as_utc(subscription.period_end),
            charge=ZERO,
            credit=ZERO,
            balance=balance,
            will_fail=False,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
        )

    proration = compute_proration(subscription, current_price, next_price, now)
    return PlanChangePreview(
        current_plan=subscription.plan,
        next_plan=next_plan,
        timing=PlanChangeTiming.IMMEDIATE,
        change_type=change_type,
        effective_at=now,
        charge=proration.charge,
        credit=proration.credit,
        balance=balance,
        will_fail=proration.charge > balance,
        period_start=proration.period_start,
        period_end=proration.period_end,
    )


def _schedule_change(
    subscription: Subscription,
    next_plan: str,
    now: datetime,
    actor: str | None,
) -> PlanChangeResult:
    subscription.pending_plan = next_plan
    subscription.pending_plan_effective_at = subscription.period_end
    subscription.pending_plan_requested_at = now
    if actor:
        subscription.updated_by_email = actor
    subscription.save()

    PlanChange.objects.create(
        subscription=subscription,
        old_plan=subscription.plan,
        new_plan=next_plan,
        timing=PlanChangeTiming.PERIOD_END,
        effective_at=subscription.period_end,
        notes=f"Scheduled by {actor}" if actor else "",
    )
    logger.info(
        "Scheduled plan change for org_id=%s: %s -> %s at %s",
        subscription.org_id,
        subscription.plan,
        next_plan,
        as_utc(subscription.period_end).isoformat(),
    )
    return PlanChangeResult(
        success=True,
        subscription=subscription,
        old_plan=subscription.plan,
        new_plan=next_plan,
        timing=PlanChangeTiming.PERIOD_END,
        effective_at=subscription.period_end,
    )


def _apply_immediately(
    subscription: Subscription,
    next_plan: str,
    now: datetime,
    actor: str | None,
) -> PlanChangeResult:
    org_id = subscription.org_id
    old_plan = subscription.plan
    current_price = get_plan_config(old_plan).monthly_price
    next_price = get_plan_config(next_plan).monthly_price
    proration = compute_proration(subscription, current_price, next_price, now)
    meta = {
        "fromPlan": old_plan,
        "toPlan": next_plan,
        "periodStart": proration.period_start.isoformat(),
        "periodEnd": proration.period_end.isoformat(),
        "prorated": proration.prorated,
    }

    if proration.charge > 0:
        result = debit(org_id, proration.charge, TransactionSource.PLAN_CHANGE, meta)
        if not result.ok:
            logger.info(
                "Plan change %s -> %s declined for org_id=%s: required=%s "
                "available=%s",
                old_plan,
                next_plan,
                org_id,
                proration.charge,
                result.available,
            )
            return PlanChangeResult(
                success=False,
                subscription=subscription,
                old_plan=old_plan,
                new_plan=next_plan,
                timing=PlanChangeTiming.IMMEDIATE,
                error=INSUFFICIENT_FUNDS,
                required=proration.charge,
                available=result.available,
            )
    if proration.credit > 0:
        credit(org_id, proration.credit, TransactionSource.PLAN_CHANGE, meta)

    subscription.plan = next_plan
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.period_start = proration.period_start
    subscription.period_end = proration.period_end
    subscription.grace_until = None
    subscription.clear_pending_plan()
    if actor:
        subscription.updated_by_email = actor
    subscription.save()

    PlanChange.objects.create(
        subscription=subscription,
        old_plan=old_plan,
        new_plan=next_plan,
        timing=PlanChangeTiming.IMMEDIATE,
        effective_at=now,
        charged=proration.charge,
        credited=proration.credit,
        notes=f"Changed by {actor}" if actor else "",
    )
    logger.info(
        "Changed plan for org_id=%s: %s -> %s, charged=%s credited=%s",
        org_id,
        old_plan,
        next_plan,
        proration.charge,
        proration.credit,
    )
    return PlanChangeResult(
        success=True,
        subscription=subscription,
        old_plan=old_plan,
        new_plan=next_plan,
        timing=PlanChangeTiming.IMMEDIATE,
        effective_at=now,
        charged=proration.charge,
        credited=proration.credit,
    )


def change_plan(
    org_id,
    next_plan: str,
    timing: str,
    now: datetime | None = None,
    actor: str | None = None,
) -> PlanChangeResult:
    """
    Switch the org to ``next_plan`` now or at the end of the current period.

    The debit, any refund credit and the subscription update commit
    together. Insufficient funds are reported on the result, not raised.

    Raises:
        InvalidPlanChangeError: for an unknown plan or timing.
    """
    now = as_utc(now) if now is not None else utc_now()
    next_plan, timing = _validate_request(next_plan, timing)
    ensure_subscription(org_id)

    def _change() -> PlanChangeResult:
        subscription = lock_subscription(org_id)
        if _defers(subscription, timing, now):
            return _schedule_change(subscription, next_plan, now, actor)
        return _apply_immediately(subscription, next_plan, now, actor)

    return run_in_transaction(_change)


def cancel_pending_plan_change(org_id, actor: str | None = None) -> bool:
    """
    Drop a scheduled plan change. Returns False when nothing was scheduled.

    Raises:
        SubscriptionNotFoundError: if the org has no subscription.
    """

    def _cancel() -> bool:
        subscription = lock_subscription(org_id)
        if not subscription.has_pending_plan:
            return False
        pending = subscription.pending_plan
        subscription.clear_pending_plan()
        if actor:
            subscription.updated_by_email = actor
        subscription.save()
        logger.info(
            "Canceled scheduled plan change to %s for org_id=%s",
            pending,
            org_id,
        )
        return True

    return run_in_transaction(_cancel)

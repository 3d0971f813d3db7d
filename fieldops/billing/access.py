"""
Access evaluator.

Answers "may this organization use the product right now, and may it
write?" from the subscription, the plan catalog and the clock.

Two entry points:
    evaluate_read_access(org_id)   never writes; a missing subscription is
                                   evaluated as basic/inactive in memory.
    evaluate_write_access(org_id)  creates the subscription if needed and
                                   renews an expired paid period by charging
                                   the wallet before answering.

Usage:
    decision = evaluate_write_access(org.id)
    if not decision.ok:
        # render read-only mode, offer grace if decision.grace_available
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from fieldops.billing.constants import REASON_GRACE_IN_USE
from fieldops.billing.constants import REASON_INSUFFICIENT_FUNDS
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.cycle import charge_subscription_period
from fieldops.billing.grace import can_start_grace
from fieldops.billing.grace import is_grace_active
from fieldops.billing.models import Subscription
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import utc_now
from fieldops.billing.plans import get_plan_config
from fieldops.billing.subscriptions import ensure_subscription
from fieldops.billing.subscriptions import get_subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    ok: bool
    plan: str
    monthly_price: Decimal
    status: str
    grace_until: datetime | None
    grace_available: bool
    read_only: bool
    reason: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None


def _period_open(subscription: Subscription, now: datetime) -> bool:
    return subscription.period_end is not None and as_utc(subscription.period_end) > now


def _decide(
    subscription: Subscription,
    now: datetime,
    *,
    allow_charge: bool,
) -> AccessDecision:
    config = get_plan_config(subscription.plan)

    def decision(ok: bool, *, status=None, reason=None) -> AccessDecision:
        return AccessDecision(
            ok=ok,
            plan=subscription.plan,
            monthly_price=config.monthly_price,
            status=status or subscription.status,
            grace_until=subscription.grace_until,
            grace_available=can_start_grace(subscription, now),
            read_only=not ok,
            reason=reason,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
        )

    if config.is_free:
        return decision(True, status=SubscriptionStatus.ACTIVE)

    status = subscription.status
    if status == SubscriptionStatus.TRIAL and _period_open(subscription, now):
        return decision(True)

    if status == SubscriptionStatus.ACTIVE:
        if subscription.period_end is None or _period_open(subscription, now):
            return decision(True)
        if allow_charge:
            result = charge_subscription_period(subscription.org_id, now=now)
            return _decide(result.subscription, now, allow_charge=False)

    if is_grace_active(subscription, now):
        return decision(True, reason=REASON_GRACE_IN_USE)

    return decision(False, reason=REASON_INSUFFICIENT_FUNDS)


def evaluate_read_access(org_id, now: datetime | None = None) -> AccessDecision:
    """Evaluate access without creating, charging or updating anything."""
    now = as_utc(now) if now is not None else utc_now()
    subscription = get_subscription(org_id)
    if subscription is None:
        subscription = Subscription(
            org_id=org_id,
            plan=PlanCode.BASIC,
            status=SubscriptionStatus.INACTIVE,
        )
    return _decide(subscription, now, allow_charge=False)


def evaluate_write_access(org_id, now: datetime | None = None) -> AccessDecision:
    """
    Evaluate access for a mutating request.

    Ensures the subscription exists, marks free-plan subscriptions active,
    and charges the wallet for a new month when an active paid period has
    expired.
    """
    now = as_utc(now) if now is not None else utc_now()
    subscription = ensure_subscription(org_id)

    if (
        get_plan_config(subscription.plan).is_free
        and subscription.status != SubscriptionStatus.ACTIVE
    ):
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.save(update_fields=["status", "modified"])
        logger.info("Activated free %s plan for org_id=%s", subscription.plan, org_id)

    return _decide(subscription, now, allow_charge=True)

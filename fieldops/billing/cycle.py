"""
Billing cycle processor.

Renews a subscription for the calendar month containing ``now`` by debiting
the plan price from the org wallet. Called lazily from write-access checks
when a paid period has run out, and in bulk by the ``charge_subscriptions``
sweeper. Correctness never depends on the sweeper having run.

A renewal that cannot be paid moves the subscription to ``past_due`` for
the new month; the org keeps read access and may activate a grace period.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from decimal import Decimal

from fieldops.billing.constants import ZERO
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.constants import TransactionSource
from fieldops.billing.exceptions import SubscriptionNotFoundError
from fieldops.billing.ledger import debit
from fieldops.billing.ledger import ensure_wallet
from fieldops.billing.ledger import run_in_transaction
from fieldops.billing.models import Subscription
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import month_bounds
from fieldops.billing.periods import utc_now
from fieldops.billing.plans import get_plan_config
from fieldops.billing.subscriptions import apply_due_pending_plan
from fieldops.billing.subscriptions import get_subscription
from fieldops.billing.subscriptions import lock_subscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_FIELDS = [
    "plan",
    "status",
    "period_start",
    "period_end",
    "grace_until",
    "pending_plan",
    "pending_plan_effective_at",
    "pending_plan_requested_at",
    "modified",
]


@dataclass(frozen=True)
class ChargeResult:
    ok: bool
    subscription: Subscription
    charged: Decimal = ZERO


@dataclass
class SweepSummary:
    """Outcome of one sweeper run."""

    processed: int = 0
    charged: int = 0
    failed: int = 0
    results: list[dict] = field(default_factory=list)


def charge_subscription_period(org_id, now: datetime | None = None) -> ChargeResult:
    """
    Charge the org for the month containing ``now``.

    Returns ``ok=False`` (and leaves the subscription ``past_due``) when the
    wallet cannot cover the plan price. A subscription that is already
    active for a period ending after ``now`` is not charged again.

    Raises:
        SubscriptionNotFoundError: if the org has no subscription.
    """
    now = as_utc(now) if now is not None else utc_now()
    subscription = get_subscription(org_id)
    if subscription is None:
        raise SubscriptionNotFoundError(org_id)

    period_start, period_end = month_bounds(now)

    def _charge() -> ChargeResult:
        locked = lock_subscription(org_id)
        switched = apply_due_pending_plan(locked, now)
        config = get_plan_config(locked.plan)

        if config.is_free:
            locked.status = SubscriptionStatus.ACTIVE
            locked.period_start = period_start
            locked.period_end = period_end
            locked.save(update_fields=SUBSCRIPTION_FIELDS)
            return ChargeResult(ok=True, subscription=locked)

        if (
            locked.status == SubscriptionStatus.ACTIVE
            and locked.period_end is not None
            and as_utc(locked.period_end) > now
        ):
            logger.info(
                "Subscription for org_id=%s already renewed until %s",
                org_id,
                locked.period_end.isoformat(),
            )
            if switched:
                locked.save(update_fields=SUBSCRIPTION_FIELDS)
            return ChargeResult(ok=True, subscription=locked)

        price = config.monthly_price
        wallet = ensure_wallet(org_id)
        paid = False
        if wallet.balance >= price:
            paid = debit(
                org_id,
                price,
                TransactionSource.SUBSCRIPTION,
                meta={
                    "plan": locked.plan,
                    "periodStart": period_start.isoformat(),
                    "periodEnd": period_end.isoformat(),
                },
            ).ok

        locked.period_start = period_start
        locked.period_end = period_end
        if not paid:
            locked.status = SubscriptionStatus.PAST_DUE
            locked.save(update_fields=SUBSCRIPTION_FIELDS)
            logger.warning(
                "Subscription charge failed for org_id=%s: plan=%s price=%s "
                "balance=%s",
                org_id,
                locked.plan,
                price,
                wallet.balance,
            )
            return ChargeResult(ok=False, subscription=locked)

        locked.status = SubscriptionStatus.ACTIVE
        locked.grace_until = None
        locked.save(update_fields=SUBSCRIPTION_FIELDS)
        logger.info(
            "Charged %s for %s plan, org_id=%s, period %s - %s",
            price,
            locked.plan,
            org_id,
            period_start.isoformat(),
            period_end.isoformat(),
        )
        return ChargeResult(ok=True, subscription=locked, charged=price)

    return run_in_transaction(_charge)


def due_subscriptions(now: datetime):
    """Paid subscriptions whose period has ended and that may be renewed."""
    return (
        Subscription.objects.exclude(plan=PlanCode.BASIC)
        .filter(
            status__in=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
        )
        .filter(period_end__lte=now)
        .order_by("id")
    )


def charge_due_subscriptions(now: datetime | None = None) -> SweepSummary:
    """
    Charge every subscription that is due at ``now``.

    Each org is charged in its own transaction, so a declined charge for
    one org does not affect the others. Database errors propagate so the
    Celery task can retry the sweep.
    """
    now = as_utc(now) if now is not None else utc_now()
    summary = SweepSummary()
    org_ids = list(due_subscriptions(now).values_list("org_id", flat=True))

    for org_id in org_ids:
        result = charge_subscription_period(org_id, now=now)
        summary.processed += 1
        if result.ok:
            summary.charged += 1
        else:
            summary.failed += 1
        summary.results.append(
            {
                "org_id": org_id,
                "ok": result.ok,
                "status": result.subscription.status,
                "charged": str(result.charged),
            },
        )

    logger.info(
        "Subscription sweep processed=%s charged=%s failed=%s",
        summary.processed,
        summary.charged,
        summary.failed,
    )
    return summary

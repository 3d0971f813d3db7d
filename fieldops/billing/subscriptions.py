"""
Subscription record store.

One ``Subscription`` row per organization. Read paths use
``get_subscription`` and never create rows; write paths go through
``ensure_subscription`` so the first write-access check for an org leaves a
``basic``/``inactive`` record behind.
"""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import timedelta

from django.conf import settings

from fieldops.billing.constants import TRIAL_DURATION_DAYS
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.exceptions import SubscriptionNotFoundError
from fieldops.billing.ledger import for_update
from fieldops.billing.models import Subscription
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import utc_now
from fieldops.billing.plans import validate_plan_code

logger = logging.getLogger(__name__)


def get_subscription(org_id) -> Subscription | None:
    return Subscription.objects.filter(org_id=org_id).first()


def ensure_subscription(org_id) -> Subscription:
    """Return the org's subscription, creating a basic/inactive one if absent."""
    subscription, created = Subscription.objects.get_or_create(
        org_id=org_id,
        defaults={
            "plan": PlanCode.BASIC,
            "status": SubscriptionStatus.INACTIVE,
        },
    )
    if created:
        logger.info("Created basic subscription for org_id=%s", org_id)
    return subscription


def lock_subscription(org_id) -> Subscription:
    """
    Re-read the subscription, locking the row when inside an atomic block.

    Raises:
        SubscriptionNotFoundError: if the org has no subscription.
    """
    subscription = for_update(Subscription.objects.filter(org_id=org_id)).first()
    if subscription is None:
        raise SubscriptionNotFoundError(org_id)
    return subscription


def apply_due_pending_plan(subscription: Subscription, now: datetime) -> bool:
    """
    Switch to the scheduled plan once its effective instant has passed.

    Mutates ``subscription`` in memory only; the caller persists it.
    """
    if not subscription.pending_plan or subscription.pending_plan_effective_at is None:
        return False
    if as_utc(subscription.pending_plan_effective_at) > as_utc(now):
        return False

    logger.info(
        "Applying scheduled plan change for org_id=%s: %s -> %s",
        subscription.org_id,
        subscription.plan,
        subscription.pending_plan,
    )
    subscription.plan = subscription.pending_plan
    subscription.clear_pending_plan()
    return True


def _trial_days() -> int:
    return getattr(settings, "BILLING_TRIAL_DAYS", TRIAL_DURATION_DAYS)


def clamp_trial_window(
    start: datetime | None,
    end: datetime | None,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """
    Resolve an administrator-supplied trial window.

    A missing start means now. A missing, inverted or too long end is
    replaced by ``start + BILLING_TRIAL_DAYS``.
    """
    start = as_utc(start) if start is not None else as_utc(now or utc_now())
    max_end = start + timedelta(days=_trial_days())
    if end is None:
        return start, max_end
    end = as_utc(end)
    if end <= start or end > max_end:
        return start, max_end
    return start, end


def start_trial(
    org_id,
    *,
    plan: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    actor: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """Put the org on a time-boxed trial, optionally switching its plan."""
    start, end = clamp_trial_window(start, end, now=now)
    subscription = ensure_subscription(org_id)
    if plan is not None:
        subscription.plan = validate_plan_code(plan)
    subscription.status = SubscriptionStatus.TRIAL
    subscription.period_start = start
    subscription.period_end = end
    if actor:
        subscription.updated_by_email = actor
    subscription.save()
    logger.info(
        "Started %s trial for org_id=%s until %s (by %s)",
        subscription.plan,
        org_id,
        end.isoformat(),
        actor or "system",
    )
    return subscription

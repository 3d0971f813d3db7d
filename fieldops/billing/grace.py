"""
Grace period manager.

An organization whose subscription could not be paid may unlock write
access for a short window (72 hours by default), at most once per calendar
month in UTC. The month is that of the activation instant, so a grace used
on the 31st does not block a new one on the 1st.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta

from django.conf import settings

from fieldops.billing.constants import GRACE_ALREADY_USED
from fieldops.billing.constants import GRACE_HOURS
from fieldops.billing.ledger import run_in_transaction
from fieldops.billing.models import Subscription
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import in_month_of
from fieldops.billing.periods import utc_now
from fieldops.billing.subscriptions import lock_subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraceActivation:
    ok: bool
    subscription: Subscription
    code: str | None = None


def grace_duration() -> timedelta:
    return timedelta(hours=getattr(settings, "BILLING_GRACE_HOURS", GRACE_HOURS))


def is_grace_active(subscription: Subscription, now: datetime) -> bool:
    if subscription.grace_until is None:
        return False
    return as_utc(subscription.grace_until) > as_utc(now)


def can_start_grace(subscription: Subscription, now: datetime) -> bool:
    """False once a grace period was activated in the calendar month of ``now``."""
    return not in_month_of(subscription.grace_used_at, now)


def activate_grace_period(org_id, now: datetime | None = None) -> GraceActivation:
    """
    Start a grace period for the org if one is allowed.

    Returns ``ok=True`` unchanged when a grace period is already running and
    ``ok=False`` with ``code=GRACE_ALREADY_USED`` when this month's grace has
    been spent.

    Raises:
        SubscriptionNotFoundError: if the org has no subscription.
    """
    now = as_utc(now) if now is not None else utc_now()

    def _activate() -> GraceActivation:
        subscription = lock_subscription(org_id)
        if is_grace_active(subscription, now):
            return GraceActivation(ok=True, subscription=subscription)
        if not can_start_grace(subscription, now):
            logger.info("Grace already used this month for org_id=%s", org_id)
            return GraceActivation(
                ok=False,
                subscription=subscription,
                code=GRACE_ALREADY_USED,
            )

        subscription.grace_until = now + grace_duration()
        subscription.grace_used_at = now
        subscription.save(update_fields=["grace_until", "grace_used_at", "modified"])
        logger.info(
            "Activated grace period for org_id=%s until %s",
            org_id,
            subscription.grace_until.isoformat(),
        )
        return GraceActivation(ok=True, subscription=subscription)

    return run_in_transaction(_activate)

"""
Celery tasks for the billing sweeper.

The sweeper renews paid subscriptions whose period has ended so that
wallets are charged at the start of the month even for orgs that make no
write requests. Write-access checks renew lazily on their own, so a missed
run only delays the charge.

Scheduled hourly via ``CELERY_BEAT_SCHEDULE`` in settings.

To run the worker:
    celery -A config worker --loglevel=info

To run the beat scheduler:
    celery -A config beat --loglevel=info
"""

import logging

from celery import shared_task
from django.db import OperationalError

from fieldops.billing.cycle import charge_due_subscriptions

logger = logging.getLogger(__name__)

# Exceptions that indicate transient failures worth retrying.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,
    TimeoutError,
)


@shared_task(
    bind=True,
    name="fieldops.charge_due_subscriptions",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def charge_due_subscriptions_task(self) -> dict:
    """
    Charge every paid subscription whose billing period has ended.

    Default schedule: Hourly at :05
    """
    logger.info(
        "Starting scheduled subscription sweep (task_id=%s)",
        self.request.id,
    )
    summary = charge_due_subscriptions()
    return {
        "status": "completed",
        "processed": summary.processed,
        "charged": summary.charged,
        "failed": summary.failed,
    }

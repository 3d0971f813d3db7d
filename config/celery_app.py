"""
Celery application configuration for FieldOps.

Runs the billing sweeper that renews paid subscriptions at the start of
each month. Tasks are defined using the @shared_task decorator so they run
inline under CELERY_TASK_ALWAYS_EAGER in tests.

Components:
  - Worker: Processes background tasks (`celery -A config worker`)
  - Beat: Triggers periodic tasks from CELERY_BEAT_SCHEDULE (`celery -A config beat`)

Configuration:
  - Broker: Redis (CELERY_BROKER_URL)
  - Result backend: None (fire-and-forget, all state in Django models)
  - Task serialization: JSON
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("fieldops")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

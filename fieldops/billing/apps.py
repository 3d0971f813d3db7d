from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Handles organization subscriptions, the prepaid wallet ledger, grace
    periods and plan changes.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "fieldops.billing"

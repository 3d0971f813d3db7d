"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: View/edit catalog prices and limits
- Subscription: View/manage organization subscriptions
- Wallet: View balances (change them through the ledger, not the form)
- WalletTransaction: Read-only ledger history
- PlanChange: Plan change audit log
- StoragePackage: Extra storage bought from the wallet
"""

from django.contrib import admin

from fieldops.billing.models import Plan
from fieldops.billing.models import PlanChange
from fieldops.billing.models import StoragePackage
from fieldops.billing.models import Subscription
from fieldops.billing.models import Wallet
from fieldops.billing.models import WalletTransaction


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for pricing plans."""

    list_display = [
        "code",
        "name",
        "monthly_price",
        "projects_limit",
        "seats_limit",
        "storage_included_gb",
        "display_order",
    ]
    list_editable = ["display_order"]
    ordering = ["display_order"]
    search_fields = ["code", "name"]

    fieldsets = [
        (None, {"fields": ["code", "name", "features"]}),
        (
            "Limits",
            {
                "fields": [
                    "projects_limit",
                    "seats_limit",
                    "tasks_month_limit",
                    "public_tasks_month_limit",
                    "storage_included_gb",
                ],
                "description": "Leave empty to use the built-in default for this plan.",
            },
        ),
        (
            "Pricing",
            {
                "fields": [
                    "monthly_price",
                    "storage_overage_price_per_gb",
                    "storage_package_gb",
                    "storage_package_price",
                ],
            },
        ),
        ("Display", {"fields": ["display_order"]}),
    ]


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for organization subscriptions."""

    list_display = [
        "org",
        "plan",
        "status",
        "period_end",
        "grace_until",
        "pending_plan",
    ]
    list_filter = ["status", "plan"]
    search_fields = ["org__name", "org__slug", "updated_by_email"]
    raw_id_fields = ["org"]
    readonly_fields = ["created", "modified"]

    fieldsets = [
        (None, {"fields": ["org", "plan", "status"]}),
        ("Billing period", {"fields": ["period_start", "period_end"]}),
        ("Grace", {"fields": ["grace_until", "grace_used_at"]}),
        (
            "Scheduled change",
            {
                "fields": [
                    "pending_plan",
                    "pending_plan_effective_at",
                    "pending_plan_requested_at",
                ],
            },
        ),
        (
            "Notes",
            {"fields": ["note", "updated_by_email", "created", "modified"]},
        ),
    ]


class WalletTransactionInline(admin.TabularInline):
    model = WalletTransaction
    fields = ["created", "kind", "source", "amount", "balance_after"]
    readonly_fields = fields
    ordering = ["-id"]
    extra = 0
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    """Admin for org wallets. Balance is read-only; use adjust_balance."""

    list_display = ["org", "balance", "currency", "modified"]
    search_fields = ["org__name", "org__slug"]
    raw_id_fields = ["org"]
    readonly_fields = ["balance", "created", "modified"]
    inlines = [WalletTransactionInline]


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    """Read-only view of the append-only ledger."""

    list_display = ["org", "kind", "source", "amount", "balance_after", "created"]
    list_filter = ["kind", "source"]
    search_fields = ["org__name", "org__slug"]
    date_hierarchy = "created"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PlanChange)
class PlanChangeAdmin(admin.ModelAdmin):
    """Plan change audit log."""

    list_display = [
        "subscription",
        "old_plan",
        "new_plan",
        "timing",
        "effective_at",
        "charged",
        "credited",
        "created",
    ]
    list_filter = ["timing", "new_plan"]
    raw_id_fields = ["subscription"]
    readonly_fields = ["created", "modified"]


@admin.register(StoragePackage)
class StoragePackageAdmin(admin.ModelAdmin):
    """Storage packages bought from org wallets."""

    list_display = [
        "org",
        "package_gb",
        "monthly_price",
        "period_start",
        "period_end",
        "status",
        "auto_renew",
    ]
    list_filter = ["status", "auto_renew"]
    search_fields = ["org__name", "org__slug"]
    raw_id_fields = ["org"]
    readonly_fields = ["created", "modified"]

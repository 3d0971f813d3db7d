"""
Extra storage packages paid from the org wallet.

A package adds ``storage_package_gb`` of storage until the end of the
current UTC calendar month. It is priced from the plan catalog, pro-rated
by the whole hours left in the month (a started hour counts in full, and at
least one hour is always charged), and multiplied by the quantity bought.

Usage:
    result = purchase_storage_package(org.id, quantity=2)
    if not result.ok:
        # result.code == "insufficient_funds", show a top-up prompt
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from decimal import Decimal

from fieldops.billing.constants import INSUFFICIENT_FUNDS
from fieldops.billing.constants import ZERO
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import StoragePackageStatus
from fieldops.billing.constants import TransactionSource
from fieldops.billing.exceptions import StoragePackageUnavailableError
from fieldops.billing.ledger import debit
from fieldops.billing.ledger import run_in_transaction
from fieldops.billing.models import StoragePackage
from fieldops.billing.periods import as_utc
from fieldops.billing.periods import month_bounds
from fieldops.billing.periods import round2
from fieldops.billing.periods import utc_now
from fieldops.billing.plans import get_plan_config
from fieldops.billing.subscriptions import get_subscription

logger = logging.getLogger(__name__)

ONE_HOUR = timedelta(hours=1)


@dataclass(frozen=True)
class StoragePurchase:
    """Outcome of a package purchase. ``required``/``available`` set on failure."""

    ok: bool
    charged: Decimal = ZERO
    packages: list[StoragePackage] = field(default_factory=list)
    code: str | None = None
    required: Decimal | None = None
    available: Decimal | None = None


def prorated_package_price(monthly_price, quantity: int, now: datetime) -> Decimal:
    """
    Price of ``quantity`` packages from ``now`` to the end of its month.

    Usage:
        prorated_package_price(Decimal(9000), 1, datetime(2024, 3, 16, tzinfo=UTC))
        # 384 of 744 hours left -> Decimal("4645.16")
    """
    now = as_utc(now)
    start, end = month_bounds(now)
    hours_total = (end - start) // ONE_HOUR
    hours_left = max(1, math.ceil((end - now) / ONE_HOUR))
    return round2(
        Decimal(monthly_price) * Decimal(hours_left) / Decimal(hours_total) * quantity,
    )


def list_active_packages(org_id, at: datetime | None = None) -> list[StoragePackage]:
    """Active packages whose month covers ``at``."""
    at = as_utc(at) if at is not None else utc_now()
    return list(
        StoragePackage.objects.filter(
            org_id=org_id,
            status=StoragePackageStatus.ACTIVE,
            period_start__lte=at,
            period_end__gt=at,
        ),
    )


def purchase_storage_package(
    org_id,
    quantity: int = 1,
    now: datetime | None = None,
) -> StoragePurchase:
    """
    Debit the wallet for ``quantity`` packages and record them.

    Orgs without a subscription buy at basic plan terms. A quantity below
    one is treated as one. An insufficient balance returns ``ok=False`` with
    ``code="insufficient_funds"`` and leaves both the wallet and the package
    table untouched.

    Raises:
        StoragePackageUnavailableError: if the plan has no package size or price.
    """
    now = as_utc(now) if now is not None else utc_now()
    quantity = max(1, int(quantity))

    subscription = get_subscription(org_id)
    plan = str(subscription.plan if subscription is not None else PlanCode.BASIC)
    config = get_plan_config(plan)
    package_gb = config.storage_package_gb or 0
    package_price = config.storage_package_price or ZERO
    if package_gb <= 0 or package_price <= 0:
        raise StoragePackageUnavailableError(plan)

    amount = prorated_package_price(package_price, quantity, now)
    period_start, period_end = month_bounds(now)

    def _purchase() -> StoragePurchase:
        result = debit(
            org_id,
            amount,
            TransactionSource.STORAGE_PACKAGE,
            meta={
                "packageGb": package_gb,
                "monthlyPrice": package_price,
                "quantity": quantity,
                "periodStart": period_start.isoformat(),
                "periodEnd": period_end.isoformat(),
            },
        )
        if not result.ok:
            return StoragePurchase(
                ok=False,
                code=INSUFFICIENT_FUNDS,
                required=amount,
                available=result.available,
            )

        packages = StoragePackage.objects.bulk_create(
            [
                StoragePackage(
                    org_id=org_id,
                    package_gb=package_gb,
                    monthly_price=package_price,
                    period_start=period_start,
                    period_end=period_end,
                )
                for _ in range(quantity)
            ],
        )
        logger.info(
            "Sold %s storage package(s) of %s GB to org_id=%s for %s until %s",
            quantity,
            package_gb,
            org_id,
            amount,
            period_end.isoformat(),
        )
        return StoragePurchase(ok=True, charged=amount, packages=packages)

    return run_in_transaction(_purchase)

"""
Plan catalog lookup.

The rest of the billing engine never reads ``Plan`` rows directly. It asks
``get_plan_config(code)`` which merges whatever an administrator stored in
the catalog table with the built-in defaults below, so a half-configured or
missing row still prices correctly.

Usage:
    config = get_plan_config(PlanCode.PRO)
    if config.monthly_price <= 0:
        # free plan, no wallet involvement
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from decimal import Decimal

from fieldops.billing.constants import PlanCode
from fieldops.billing.exceptions import UnknownPlanError
from fieldops.billing.models import Plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanConfig:
    """Normalized, read-only view of a catalog plan."""

    plan: str
    title: str
    monthly_price: Decimal
    projects_limit: int | None = None
    seats_limit: int | None = None
    tasks_month_limit: int | None = None
    public_tasks_month_limit: int | None = None
    storage_included_gb: int | None = None
    storage_overage_price_per_gb: Decimal = Decimal(0)
    storage_package_gb: int | None = None
    storage_package_price: Decimal | None = None
    features: list[str] = field(default_factory=list)

    @property
    def is_free(self) -> bool:
        return self.monthly_price <= 0


DEFAULT_PLAN_CONFIGS: dict[str, PlanConfig] = {
    PlanCode.BASIC: PlanConfig(
        plan=PlanCode.BASIC,
        title="Basic",
        monthly_price=Decimal(0),
        projects_limit=1,
        seats_limit=5,
        tasks_month_limit=10,
        public_tasks_month_limit=5,
        storage_included_gb=5,
        storage_overage_price_per_gb=Decimal(120),
        storage_package_gb=100,
        storage_package_price=Decimal(9000),
        features=[
            "1 project",
            "Up to 5 active seats",
            "Up to 10 tasks per month",
            "5 GB storage included",
        ],
    ),
    PlanCode.PRO: PlanConfig(
        plan=PlanCode.PRO,
        title="Pro",
        monthly_price=Decimal(5490),
        projects_limit=20,
        seats_limit=50,
        tasks_month_limit=100,
        public_tasks_month_limit=10,
        storage_included_gb=50,
        storage_overage_price_per_gb=Decimal(120),
        storage_package_gb=100,
        storage_package_price=Decimal(9000),
        features=[
            "20 projects",
            "Up to 50 active seats",
            "Up to 100 tasks per month",
            "50 GB storage included",
            "Basic integrations",
            "Export",
            "48h SLA",
        ],
    ),
    PlanCode.BUSINESS: PlanConfig(
        plan=PlanCode.BUSINESS,
        title="Business",
        monthly_price=Decimal(9990),
        projects_limit=50,
        seats_limit=100,
        tasks_month_limit=300,
        public_tasks_month_limit=20,
        storage_included_gb=100,
        storage_overage_price_per_gb=Decimal(120),
        storage_package_gb=100,
        storage_package_price=Decimal(9000),
        features=[
            "50 projects",
            "Up to 100 active seats",
            "Up to 300 tasks per month",
            "100 GB storage included",
            "Advanced integrations",
            "Audit log",
            "24h SLA",
        ],
    ),
    PlanCode.ENTERPRISE: PlanConfig(
        plan=PlanCode.ENTERPRISE,
        title="Enterprise",
        monthly_price=Decimal(0),
        storage_overage_price_per_gb=Decimal(0),
        features=[
            "Individual terms",
            "No limits",
            "Dedicated account manager",
        ],
    ),
}

# Catalog order for listings
PLAN_ORDER = [
    PlanCode.BASIC,
    PlanCode.PRO,
    PlanCode.BUSINESS,
    PlanCode.ENTERPRISE,
]


def validate_plan_code(code: str) -> str:
    if code not in PlanCode.values:
        raise UnknownPlanError(code)
    return str(code)


def _normalize_limit(value: int | None, fallback: int | None) -> int | None:
    # Null or negative means "not configured" and falls back to the default.
    if value is None or value < 0:
        return fallback
    return value


def _normalize_price(value: Decimal | None, fallback: Decimal | None):
    return fallback if value is None else Decimal(value)


def _normalize(code: str, row: Plan | None) -> PlanConfig:
    fallback = DEFAULT_PLAN_CONFIGS[code]
    if row is None:
        return fallback

    features = row.features if isinstance(row.features, list) else None
    return PlanConfig(
        plan=code,
        title=(row.name or "").strip() or fallback.title,
        monthly_price=_normalize_price(row.monthly_price, fallback.monthly_price),
        projects_limit=_normalize_limit(row.projects_limit, fallback.projects_limit),
        seats_limit=_normalize_limit(row.seats_limit, fallback.seats_limit),
        tasks_month_limit=_normalize_limit(
            row.tasks_month_limit,
            fallback.tasks_month_limit,
        ),
        public_tasks_month_limit=_normalize_limit(
            row.public_tasks_month_limit,
            fallback.public_tasks_month_limit,
        ),
        storage_included_gb=_normalize_limit(
            row.storage_included_gb,
            fallback.storage_included_gb,
        ),
        storage_overage_price_per_gb=_normalize_price(
            row.storage_overage_price_per_gb,
            fallback.storage_overage_price_per_gb,
        ),
        storage_package_gb=_normalize_limit(
            row.storage_package_gb,
            fallback.storage_package_gb,
        ),
        storage_package_price=_normalize_price(
            row.storage_package_price,
            fallback.storage_package_price,
        ),
        features=(
            [f for f in features if f] if features is not None else fallback.features
        ),
    )


def get_plan_config(code: str) -> PlanConfig:
    """
    Return the normalized configuration for a plan code.

    Raises:
        UnknownPlanError: if ``code`` is not a catalog plan.
    """
    code = validate_plan_code(code)
    row = Plan.objects.filter(code=code).first()
    return _normalize(code, row)


def get_all_plan_configs() -> list[PlanConfig]:
    """Return all catalog plans in display order, normalized."""
    rows = {row.code: row for row in Plan.objects.all()}
    return [_normalize(code, rows.get(code)) for code in PLAN_ORDER]


def plan_defaults(code: str) -> dict:
    """Model field values for seeding a catalog row from the defaults."""
    config = DEFAULT_PLAN_CONFIGS[code]
    return {
        "name": config.title,
        "monthly_price": config.monthly_price,
        "projects_limit": config.projects_limit,
        "seats_limit": config.seats_limit,
        "tasks_month_limit": config.tasks_month_limit,
        "public_tasks_month_limit": config.public_tasks_month_limit,
        "storage_included_gb": config.storage_included_gb,
        "storage_overage_price_per_gb": config.storage_overage_price_per_gb,
        "storage_package_gb": config.storage_package_gb,
        "storage_package_price": config.storage_package_price,
        "features": list(config.features),
        "display_order": PLAN_ORDER.index(code),
    }


def ensure_plan_configs() -> list[str]:
    """
    Insert catalog rows that are missing, leaving existing rows untouched.

    Returns the list of plan codes that were created.
    """
    existing = set(Plan.objects.values_list("code", flat=True))
    created = []
    for code in PLAN_ORDER:
        if code in existing:
            continue
        Plan.objects.create(code=code, **plan_defaults(code))
        created.append(str(code))
    if created:
        logger.info("Seeded plan catalog rows: %s", ", ".join(created))
    return created

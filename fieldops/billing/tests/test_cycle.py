from datetime import UTC
from datetime import datetime
from decimal import Decimal

import pytest

from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.constants import TransactionSource
from fieldops.billing.cycle import charge_due_subscriptions
from fieldops.billing.cycle import charge_subscription_period
from fieldops.billing.exceptions import SubscriptionNotFoundError
from fieldops.billing.ledger import credit
from fieldops.billing.ledger import get_balance
from fieldops.billing.models import Wallet
from fieldops.billing.models import WalletTransaction
from fieldops.billing.tests.factories import PlanFactory
from fieldops.billing.tests.factories import SubscriptionFactory
from fieldops.organizations.tests.factories import OrganizationFactory

APRIL_START = datetime(2024, 4, 1, tzinfo=UTC)
MAY_START = datetime(2024, 5, 1, tzinfo=UTC)
EARLY_APRIL = datetime(2024, 4, 2, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _plans(db):
    PlanFactory(code=PlanCode.PRO, monthly_price=Decimal("1000.00"))
    PlanFactory(code=PlanCode.BUSINESS, monthly_price=Decimal("2000.00"))


@pytest.mark.django_db
class TestChargeSubscriptionPeriod:
    def test_missing_subscription_raises(self, org):
        with pytest.raises(SubscriptionNotFoundError) as exc_info:
            charge_subscription_period(org.id, now=EARLY_APRIL)
        assert exc_info.value.code == "SUBSCRIPTION_NOT_FOUND"

    def test_successful_charge(self, org):
        SubscriptionFactory(
            org=org,
            grace_until=datetime(2024, 3, 30, tzinfo=UTC),
        )
        credit(org.id, Decimal("1200"))

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert result.ok
        assert result.charged == Decimal("1000.00")
        subscription = result.subscription
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.period_start == APRIL_START
        assert subscription.period_end == MAY_START
        assert subscription.grace_until is None
        assert get_balance(org.id) == Decimal("200.00")

        entry = WalletTransaction.objects.filter(org=org).last()
        assert entry.source == TransactionSource.SUBSCRIPTION
        assert entry.amount == Decimal("-1000.00")
        assert entry.meta == {
            "plan": "pro",
            "periodStart": "2024-04-01T00:00:00+00:00",
            "periodEnd": "2024-05-01T00:00:00+00:00",
        }

    def test_failed_charge_moves_to_past_due_with_new_period(self, org):
        SubscriptionFactory(org=org)

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert not result.ok
        assert result.charged == 0
        subscription = result.subscription
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert subscription.period_start == APRIL_START
        assert subscription.period_end == MAY_START
        assert get_balance(org.id) == Decimal("0.00")
        assert not WalletTransaction.objects.filter(org=org).exists()

    def test_partial_funds_are_not_taken(self, org):
        SubscriptionFactory(org=org)
        credit(org.id, Decimal("999.99"))

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert not result.ok
        assert get_balance(org.id) == Decimal("999.99")

    def test_already_renewed_period_is_not_charged_twice(self, org):
        SubscriptionFactory(org=org)
        credit(org.id, Decimal("5000"))

        first = charge_subscription_period(org.id, now=EARLY_APRIL)
        second = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert first.charged == Decimal("1000.00")
        assert second.ok
        assert second.charged == 0
        assert get_balance(org.id) == Decimal("4000.00")

    def test_past_due_is_retried(self, org):
        SubscriptionFactory(
            org=org,
            status=SubscriptionStatus.PAST_DUE,
            period_start=APRIL_START,
            period_end=MAY_START,
        )
        credit(org.id, Decimal("1000"))

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert result.ok
        assert result.subscription.status == SubscriptionStatus.ACTIVE

    def test_free_plan_renews_without_wallet(self, org):
        SubscriptionFactory(org=org, plan=PlanCode.BASIC)

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert result.ok
        assert result.charged == 0
        assert result.subscription.period_end == MAY_START
        assert not Wallet.objects.filter(org=org).exists()

    def test_due_pending_plan_is_applied_before_pricing(self, org):
        SubscriptionFactory(
            org=org,
            pending_plan=PlanCode.BUSINESS,
            pending_plan_effective_at=APRIL_START,
            pending_plan_requested_at=datetime(2024, 3, 20, tzinfo=UTC),
        )
        credit(org.id, Decimal("2500"))

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert result.charged == Decimal("2000.00")
        subscription = result.subscription
        subscription.refresh_from_db()
        assert subscription.plan == PlanCode.BUSINESS
        assert subscription.pending_plan == ""
        assert subscription.pending_plan_effective_at is None

    def test_pending_downgrade_to_free_plan(self, org):
        SubscriptionFactory(
            org=org,
            pending_plan=PlanCode.BASIC,
            pending_plan_effective_at=APRIL_START,
        )

        result = charge_subscription_period(org.id, now=EARLY_APRIL)

        assert result.ok
        assert result.subscription.plan == PlanCode.BASIC
        assert result.subscription.status == SubscriptionStatus.ACTIVE


@pytest.mark.django_db
class TestChargeDueSubscriptions:
    def test_charges_only_due_paid_subscriptions(self):
        funded = SubscriptionFactory()
        credit(funded.org_id, Decimal("1000"))
        unfunded = SubscriptionFactory(status=SubscriptionStatus.PAST_DUE)
        SubscriptionFactory(period_start=APRIL_START, period_end=MAY_START)
        SubscriptionFactory(plan=PlanCode.BASIC)
        SubscriptionFactory(status=SubscriptionStatus.SUSPENDED)

        summary = charge_due_subscriptions(now=EARLY_APRIL)

        assert summary.processed == 2
        assert summary.charged == 1
        assert summary.failed == 1
        outcomes = {row["org_id"]: row for row in summary.results}
        assert outcomes[funded.org_id]["ok"] is True
        assert outcomes[funded.org_id]["charged"] == "1000.00"
        assert outcomes[unfunded.org_id]["status"] == SubscriptionStatus.PAST_DUE

    def test_second_run_in_same_month_is_a_no_op(self):
        subscription = SubscriptionFactory()
        credit(subscription.org_id, Decimal("5000"))

        charge_due_subscriptions(now=EARLY_APRIL)
        summary = charge_due_subscriptions(now=EARLY_APRIL)

        assert summary.processed == 0
        assert get_balance(subscription.org_id) == Decimal("4000.00")

    def test_no_due_subscriptions(self):
        OrganizationFactory()
        summary = charge_due_subscriptions(now=EARLY_APRIL)
        assert summary.processed == 0
        assert summary.results == []

"""
Tests for the plan change engine.

Covers proration arithmetic, preview/apply agreement, period-end
scheduling and the insufficient-funds path.
"""

from datetime import UTC
from datetime import datetime
from decimal import Decimal

import pytest

from fieldops.billing.constants import INSUFFICIENT_FUNDS
from fieldops.billing.constants import PlanChangeTiming
from fieldops.billing.constants import PlanCode
from fieldops.billing.constants import SubscriptionStatus
from fieldops.billing.constants import TransactionSource
from fieldops.billing.exceptions import InvalidPlanChangeError
from fieldops.billing.exceptions import SubscriptionNotFoundError
from fieldops.billing.ledger import credit
from fieldops.billing.ledger import get_balance
from fieldops.billing.ledger import replay_balance
from fieldops.billing.models import PlanChange
from fieldops.billing.models import Subscription
from fieldops.billing.models import Wallet
from fieldops.billing.models import WalletTransaction
from fieldops.billing.plan_changes import PlanChangeType
from fieldops.billing.plan_changes import cancel_pending_plan_change
from fieldops.billing.plan_changes import change_plan
from fieldops.billing.plan_changes import compute_proration
from fieldops.billing.plan_changes import preview_plan_change
from fieldops.billing.plan_changes import prorate
from fieldops.billing.tests.factories import PlanFactory
from fieldops.billing.tests.factories import SubscriptionFactory

MARCH_START = datetime(2024, 3, 1, tzinfo=UTC)
APRIL_START = datetime(2024, 4, 1, tzinfo=UTC)
MID_MARCH = datetime(2024, 3, 16, tzinfo=UTC)
EARLY_APRIL = datetime(2024, 4, 2, tzinfo=UTC)

PRO_PRICE = Decimal("1000.00")
BUSINESS_PRICE = Decimal("2000.00")


@pytest.fixture
def plans(db):
    PlanFactory(code=PlanCode.PRO, monthly_price=PRO_PRICE)
    PlanFactory(code=PlanCode.BUSINESS, monthly_price=BUSINESS_PRICE)


@pytest.fixture
def pro_subscription(org, plans):
    return SubscriptionFactory(org=org, plan=PlanCode.PRO)


class TestProrate:
    def test_mid_period_upgrade(self):
        charge, refund = prorate(
            PRO_PRICE,
            BUSINESS_PRICE,
            MARCH_START,
            APRIL_START,
            MID_MARCH,
        )
        assert charge == Decimal("516.13")
        assert refund == 0

    def test_mid_period_downgrade_is_mirror_image(self):
        charge, refund = prorate(
            BUSINESS_PRICE,
            PRO_PRICE,
            MARCH_START,
            APRIL_START,
            MID_MARCH,
        )
        assert charge == 0
        assert refund == Decimal("516.13")

    def test_at_period_start_is_flat_price_difference(self):
        assert prorate(
            PRO_PRICE,
            BUSINESS_PRICE,
            MARCH_START,
            APRIL_START,
            MARCH_START,
        ) == (Decimal("1000.00"), 0)
        assert prorate(
            BUSINESS_PRICE,
            PRO_PRICE,
            MARCH_START,
            APRIL_START,
            MARCH_START,
        ) == (0, Decimal("1000.00"))

    def test_at_period_end_is_zero(self):
        assert prorate(
            PRO_PRICE,
            BUSINESS_PRICE,
            MARCH_START,
            APRIL_START,
            APRIL_START,
        ) == (0, 0)

    def test_same_price_is_zero(self):
        assert prorate(PRO_PRICE, PRO_PRICE, MARCH_START, APRIL_START, MID_MARCH) == (
            0,
            0,
        )


class TestComputeProration:
    def test_active_paid_period_keeps_bounds(self):
        subscription = Subscription(
            plan=PlanCode.PRO,
            status=SubscriptionStatus.ACTIVE,
            period_start=MARCH_START,
            period_end=APRIL_START,
        )

        proration = compute_proration(
            subscription,
            PRO_PRICE,
            BUSINESS_PRICE,
            MID_MARCH,
        )

        assert proration.prorated
        assert proration.charge == Decimal("516.13")
        assert proration.period_start == MARCH_START
        assert proration.period_end == APRIL_START

    @pytest.mark.parametrize(
        ("status", "current_price", "period_end"),
        [
            (SubscriptionStatus.PAST_DUE, PRO_PRICE, APRIL_START),
            (SubscriptionStatus.TRIAL, PRO_PRICE, APRIL_START),
            (SubscriptionStatus.ACTIVE, Decimal(0), APRIL_START),
            (SubscriptionStatus.ACTIVE, PRO_PRICE, MID_MARCH),
        ],
    )
    def test_no_active_paid_period_is_a_full_purchase(
        self,
        status,
        current_price,
        period_end,
    ):
        subscription = Subscription(
            status=status,
            period_start=MARCH_START,
            period_end=period_end,
        )

        proration = compute_proration(
            subscription,
            current_price,
            BUSINESS_PRICE,
            MID_MARCH,
        )

        assert not proration.prorated
        assert proration.charge == BUSINESS_PRICE
        assert proration.credit == 0
        assert proration.period_start == MARCH_START
        assert proration.period_end == APRIL_START


@pytest.mark.django_db
class TestImmediateChange:
    def test_upgrade_scenario(self, org, pro_subscription):
        credit(org.id, Decimal("1000"))

        result = change_plan(
            org.id,
            PlanCode.BUSINESS,
            PlanChangeTiming.IMMEDIATE,
            now=MID_MARCH,
            actor="owner@example.com",
        )

        assert result.success
        assert result.charged == Decimal("516.13")
        assert result.credited == 0
        assert get_balance(org.id) == Decimal("483.87")

        pro_subscription.refresh_from_db()
        assert pro_subscription.plan == PlanCode.BUSINESS
        assert pro_subscription.status == SubscriptionStatus.ACTIVE
        assert pro_subscription.period_start == MARCH_START
        assert pro_subscription.period_end == APRIL_START
        assert pro_subscription.updated_by_email == "owner@example.com"

        entry = WalletTransaction.objects.get(org=org, source=TransactionSource.PLAN_CHANGE)
        assert entry.amount == Decimal("-516.13")
        assert entry.meta["fromPlan"] == "pro"
        assert entry.meta["toPlan"] == "business"

    def test_downgrade_credits_remaining_difference(self, org, plans):
        subscription = SubscriptionFactory(org=org, plan=PlanCode.BUSINESS)

        result = change_plan(org.id, PlanCode.PRO, "immediate", now=MID_MARCH)

        assert result.success
        assert result.charged == 0
        assert result.credited == Decimal("516.13")
        assert get_balance(org.id) == Decimal("516.13")
        subscription.refresh_from_db()
        assert subscription.plan == PlanCode.PRO

    def test_insufficient_funds_leaves_everything_unchanged(self, org, pro_subscription):
        credit(org.id, Decimal("500"))

        result = change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        assert not result.success
        assert result.error == INSUFFICIENT_FUNDS
        assert result.required == Decimal("516.13")
        assert result.available == Decimal("500.00")
        assert get_balance(org.id) == Decimal("500.00")
        pro_subscription.refresh_from_db()
        assert pro_subscription.plan == PlanCode.PRO
        assert not PlanChange.objects.exists()

    def test_purchase_without_active_period_charges_full_price(self, org, plans):
        subscription = SubscriptionFactory(
            org=org,
            plan=PlanCode.PRO,
            status=SubscriptionStatus.PAST_DUE,
            period_start=APRIL_START,
            period_end=datetime(2024, 5, 1, tzinfo=UTC),
            grace_until=datetime(2024, 4, 3, tzinfo=UTC),
            grace_used_at=EARLY_APRIL,
        )
        credit(org.id, Decimal("1000"))

        result = change_plan(org.id, PlanCode.PRO, "immediate", now=EARLY_APRIL)

        assert result.success
        assert result.charged == PRO_PRICE
        subscription.refresh_from_db()
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.grace_until is None
        assert subscription.grace_used_at == EARLY_APRIL
        assert get_balance(org.id) == Decimal("0.00")

    def test_first_purchase_creates_subscription(self, org, plans):
        credit(org.id, Decimal("2000"))

        result = change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        assert result.success
        assert result.charged == BUSINESS_PRICE
        subscription = Subscription.objects.get(org=org)
        assert subscription.plan == PlanCode.BUSINESS
        assert subscription.period_start == MARCH_START
        assert subscription.period_end == APRIL_START

    def test_switch_to_free_plan_moves_no_money(self, org, plans):
        SubscriptionFactory(org=org, plan=PlanCode.BASIC, status=SubscriptionStatus.ACTIVE)

        result = change_plan(org.id, PlanCode.ENTERPRISE, "immediate", now=MID_MARCH)

        assert result.success
        assert result.charged == 0
        assert not WalletTransaction.objects.filter(org=org).exists()

    def test_immediate_change_clears_scheduled_change(self, org, pro_subscription):
        change_plan(org.id, PlanCode.BASIC, "period_end", now=MID_MARCH)
        credit(org.id, Decimal("1000"))

        change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        pro_subscription.refresh_from_db()
        assert pro_subscription.pending_plan == ""
        assert pro_subscription.pending_plan_effective_at is None

    def test_audit_row_is_written(self, org, pro_subscription):
        credit(org.id, Decimal("1000"))

        change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        audit = PlanChange.objects.get(subscription=pro_subscription)
        assert audit.old_plan == PlanCode.PRO
        assert audit.new_plan == PlanCode.BUSINESS
        assert audit.timing == PlanChangeTiming.IMMEDIATE
        assert audit.charged == Decimal("516.13")

    def test_round_trip_conserves_ledger(self, org, pro_subscription):
        credit(org.id, Decimal("1000"))

        change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)
        change_plan(org.id, PlanCode.PRO, "immediate", now=MID_MARCH)

        assert get_balance(org.id) == Decimal("1000.00")
        assert replay_balance(org.id) == Decimal("1000.00")


@pytest.mark.django_db
class TestPeriodEndChange:
    def test_schedules_without_moving_money(self, org, pro_subscription):
        result = change_plan(org.id, PlanCode.BASIC, "period_end", now=MID_MARCH)

        assert result.success
        assert result.timing == PlanChangeTiming.PERIOD_END
        assert result.effective_at == APRIL_START
        pro_subscription.refresh_from_db()
        assert pro_subscription.plan == PlanCode.PRO
        assert pro_subscription.pending_plan == PlanCode.BASIC
        assert pro_subscription.pending_plan_effective_at == APRIL_START
        assert pro_subscription.pending_plan_requested_at == MID_MARCH
        assert not Wallet.objects.filter(org=org).exists()

    def test_ended_period_is_treated_as_immediate(self, org, pro_subscription):
        credit(org.id, Decimal("2000"))

        result = change_plan(org.id, PlanCode.BUSINESS, "period_end", now=EARLY_APRIL)

        assert result.timing == PlanChangeTiming.IMMEDIATE
        assert result.charged == BUSINESS_PRICE
        pro_subscription.refresh_from_db()
        assert pro_subscription.plan == PlanCode.BUSINESS
        assert pro_subscription.period_start == APRIL_START

    def test_cancel_pending_change(self, org, pro_subscription):
        change_plan(org.id, PlanCode.BASIC, "period_end", now=MID_MARCH)

        assert cancel_pending_plan_change(org.id) is True
        assert cancel_pending_plan_change(org.id) is False
        pro_subscription.refresh_from_db()
        assert not pro_subscription.has_pending_plan

    def test_cancel_without_subscription_raises(self, org):
        with pytest.raises(SubscriptionNotFoundError):
            cancel_pending_plan_change(org.id)


@pytest.mark.django_db
class TestPreviewPlanChange:
    def test_preview_matches_apply(self, org, pro_subscription):
        credit(org.id, Decimal("1000"))

        preview = preview_plan_change(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)
        result = change_plan(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        assert preview.charge == result.charged
        assert preview.credit == result.credited
        assert preview.change_type == PlanChangeType.UPGRADE
        assert not preview.will_fail

    def test_preview_reports_will_fail_without_writing(self, org, plans):
        SubscriptionFactory(org=org, plan=PlanCode.PRO)

        preview = preview_plan_change(org.id, PlanCode.BUSINESS, "immediate", now=MID_MARCH)

        assert preview.will_fail
        assert preview.balance == 0
        assert not Wallet.objects.filter(org=org).exists()
        assert not PlanChange.objects.exists()

    def test_preview_without_subscription(self, org, plans):
        preview = preview_plan_change(org.id, PlanCode.PRO, "immediate", now=MID_MARCH)

        assert preview.current_plan == PlanCode.BASIC
        assert preview.charge == PRO_PRICE
        assert not Subscription.objects.filter(org=org).exists()

    def test_preview_period_end(self, org, pro_subscription):
        preview = preview_plan_change(org.id, PlanCode.BASIC, "period_end", now=MID_MARCH)

        assert preview.timing == PlanChangeTiming.PERIOD_END
        assert preview.effective_at == APRIL_START
        assert preview.charge == 0
        assert preview.change_type == PlanChangeType.DOWNGRADE


@pytest.mark.django_db
class TestInvalidRequests:
    def test_unknown_plan(self, org):
        with pytest.raises(InvalidPlanChangeError):
            change_plan(org.id, "platinum", "immediate", now=MID_MARCH)

    def test_unknown_timing(self, org, plans):
        with pytest.raises(InvalidPlanChangeError) as exc_info:
            preview_plan_change(org.id, PlanCode.PRO, "tomorrow", now=MID_MARCH)
        assert exc_info.value.code == "invalid_plan_change"

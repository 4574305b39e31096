"""
Tests for referral pricing and commission awards.
"""
import pytest
from decimal import Decimal

from letterdesk.errors import NotFoundError
from letterdesk.models.db_models import CommissionStatus, PerformanceTier, UserRole
from letterdesk.services.commission import CommissionEngine, PriceQuote, to_cents


@pytest.fixture
def commissions(db):
    return CommissionEngine(db)


@pytest.fixture
def employee(db, store, make_user):
    employee = store.create_employee(make_user(role=UserRole.EMPLOYEE, full_name="Sam Seller"))
    db.commit()
    return employee


def _subscribe(db, store, user, plan, quote):
    subscription = store.create_subscription(
        user.id, plan, quote.original_price, quote.discount_amount, quote.final_price, quote.referral_code
    )
    db.flush()
    return subscription


# =============================================================================
# TEST: PRICING
# =============================================================================

class TestQuotePrice:

    def test_referral_discount(self, commissions, employee, make_plan):
        quote = commissions.quote_price(make_plan(price="299.00"), employee.referral_code)

        assert quote.original_price == Decimal("299.00")
        assert quote.discount_amount == Decimal("59.80")
        assert quote.final_price == Decimal("239.20")
        assert quote.referral_code == employee.referral_code
        assert quote.amount_cents == 23920

    def test_no_code(self, commissions, make_plan):
        quote = commissions.quote_price(make_plan(price="299.00"))
        assert quote == PriceQuote(Decimal("299.00"), Decimal("0.00"), Decimal("299.00"))

    def test_unknown_code(self, commissions, make_plan):
        quote = commissions.quote_price(make_plan(price="299.00"), "EMPLOYEE20-ZZ")
        assert quote.discount_amount == Decimal("0.00")
        assert quote.referral_code is None

    def test_inactive_employee_code(self, db, store, commissions, employee, make_plan):
        store.set_employee_active(employee.id, False)
        db.commit()

        quote = commissions.quote_price(make_plan(price="299.00"), employee.referral_code)
        assert quote.final_price == Decimal("299.00")

    def test_zero_discount_keeps_referral(self, db, store, commissions, employee, make_user, make_plan):
        employee.discount_percentage = 0
        db.commit()
        plan = make_plan(price="299.00")

        quote = commissions.quote_price(plan, employee.referral_code)

        assert quote.discount_amount == Decimal("0.00")
        assert quote.final_price == Decimal("299.00")
        assert quote.referral_code == employee.referral_code
        subscription = _subscribe(db, store, make_user(), plan, quote)
        record = commissions.award(subscription, quote.referral_code)
        assert record.commission_amount == Decimal("14.95")

    def test_rounds_half_up(self):
        assert to_cents("0.125") == Decimal("0.13")
        assert to_cents(Decimal("11.955")) == Decimal("11.96")


# =============================================================================
# TEST: AWARDS
# =============================================================================

class TestAward:

    def test_award_for_referred_purchase(self, db, store, commissions, employee, make_user, make_plan):
        plan = make_plan(price="299.00")
        quote = commissions.quote_price(plan, employee.referral_code)
        subscription = _subscribe(db, store, make_user(), plan, quote)

        record = commissions.award(subscription, employee.referral_code)
        db.commit()
        db.refresh(employee)

        assert record.commission_amount == Decimal("11.96")
        assert record.commission_rate == Decimal("0.050")
        assert record.points_earned == 1
        assert record.status == CommissionStatus.PENDING
        assert employee.total_commission == Decimal("11.96")
        assert employee.total_points == 1
        assert employee.performance_tier == PerformanceTier.BRONZE
        assert commissions.list_for_employee(employee.id) == [record]

    def test_no_award_without_code(self, db, store, commissions, make_user, make_plan):
        plan = make_plan()
        subscription = _subscribe(db, store, make_user(), plan, commissions.quote_price(plan))

        assert commissions.award(subscription, None) is None

    def test_no_award_for_inactive_employee(self, db, store, commissions, employee, make_user, make_plan):
        plan = make_plan()
        subscription = _subscribe(db, store, make_user(), plan, commissions.quote_price(plan, employee.referral_code))
        store.set_employee_active(employee.id, False)

        assert commissions.award(subscription, employee.referral_code) is None
        db.commit()
        db.refresh(employee)
        assert employee.total_points == 0

    def test_rate_is_snapshotted(self, db, store, commissions, employee, make_user, make_plan):
        plan = make_plan(price="100.00")
        quote = commissions.quote_price(plan, employee.referral_code)
        subscription = _subscribe(db, store, make_user(), plan, quote)
        record = commissions.award(subscription, employee.referral_code)
        db.commit()

        employee.commission_rate = Decimal("0.100")
        db.commit()
        db.refresh(record)

        assert record.commission_rate == Decimal("0.050")
        assert record.commission_amount == Decimal("4.00")


# =============================================================================
# TEST: PAYOUT
# =============================================================================

class TestMarkPaid:

    def test_pending_to_paid_once(self, db, store, commissions, employee, make_user, make_plan):
        plan = make_plan()
        subscription = _subscribe(db, store, make_user(), plan, commissions.quote_price(plan, employee.referral_code))
        record = commissions.award(subscription, employee.referral_code)
        db.commit()

        paid = commissions.mark_paid(record.id)
        paid_at = paid.paid_at
        again = commissions.mark_paid(record.id)

        assert again.status == CommissionStatus.PAID
        assert again.paid_at == paid_at

    def test_unknown_record(self, commissions):
        with pytest.raises(NotFoundError):
            commissions.mark_paid("missing")

"""
Account & Subscription Store

Users, employees, plans, subscriptions and the two shared counters of the
system: subscription credits and employee commission totals.

Counters are only ever changed with relative UPDATE statements
(``col = col + :delta``) so concurrent writers cannot lose each other's
updates. No code path writes an absolute counter value.
"""
import logging
import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import case, cast
from sqlalchemy.orm import Session

from ..errors import CapacityError, NotFoundError
from ..models.db_models import (
    UserDB, EmployeeDB, SubscriptionPlanDB, UserSubscriptionDB,
    UserRole, BillingCycle, SubscriptionStatus, PerformanceTier,
)

logger = logging.getLogger(__name__)

YEARLY_TERM = timedelta(days=365)

# Referral-count thresholds, highest first
TIER_THRESHOLDS = [
    (50, PerformanceTier.PLATINUM),
    (25, PerformanceTier.GOLD),
    (10, PerformanceTier.SILVER),
    (0, PerformanceTier.BRONZE),
]

DEFAULT_PLANS = [
    {
        "name": "Single Letter",
        "description": "One professional legal letter",
        "letter_count": 1,
        "price": Decimal("299.00"),
        "billing_cycle": BillingCycle.ONE_TIME,
        "features": ["AI-generated content", "Attorney review", "PDF download"],
    },
    {
        "name": "Monthly Plan",
        "description": "Four letters per month",
        "letter_count": 48,
        "price": Decimal("299.00"),
        "billing_cycle": BillingCycle.YEARLY,
        "features": ["48 letters/year", "Priority review", "PDF downloads", "Email support"],
    },
    {
        "name": "Premium Plan",
        "description": "Eight letters per month",
        "letter_count": 96,
        "price": Decimal("599.00"),
        "billing_cycle": BillingCycle.YEARLY,
        "features": ["96 letters/year", "Priority review", "PDF downloads",
                     "Priority support", "Custom templates"],
    },
]


def tier_for_points(points: int) -> PerformanceTier:
    """Performance tier for a referral count."""
    for threshold, tier in TIER_THRESHOLDS:
        if points >= threshold:
            return tier
    return PerformanceTier.BRONZE


def referral_code_for(full_name: str) -> str:
    """EMPLOYEE20-<initials>, e.g. EMPLOYEE20-JD for Jane Doe."""
    initials = "".join(part[0].upper() for part in full_name.split() if part)
    return f"EMPLOYEE20-{initials or 'X'}"


class AccountStore:
    """Per-session access to accounts and credit balances."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # USERS
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.email == email.lower()).first()

    def list_users(self) -> List[UserDB]:
        return self.db.query(UserDB).order_by(UserDB.created_at).all()

    def create_user(
        self,
        email: str,
        password_hash: str,
        full_name: str,
        role: UserRole = UserRole.USER,
        phone: Optional[str] = None,
        company_name: Optional[str] = None,
    ) -> UserDB:
        user = UserDB(
            id=str(uuid4()),
            email=email.lower(),
            password_hash=password_hash,
            full_name=full_name,
            role=role,
            phone=phone,
            company_name=company_name,
        )
        self.db.add(user)
        self.db.flush()
        return user

    # =========================================================================
    # EMPLOYEES
    # =========================================================================

    def create_employee(
        self,
        user: UserDB,
        commission_rate: Decimal = Decimal("0.05"),
        discount_percentage: int = 20,
    ) -> EmployeeDB:
        code = referral_code_for(user.full_name)
        while self.get_employee_by_referral_code(code) is not None:
            code = f"{referral_code_for(user.full_name)}-{secrets.token_hex(2).upper()}"

        employee = EmployeeDB(
            id=user.id,
            referral_code=code,
            commission_rate=commission_rate,
            discount_percentage=discount_percentage,
            is_active=True,
            total_commission=Decimal("0.00"),
            total_points=0,
            performance_tier=PerformanceTier.BRONZE,
        )
        self.db.add(employee)
        self.db.flush()
        return employee

    def get_employee(self, employee_id: str) -> Optional[EmployeeDB]:
        return self.db.query(EmployeeDB).filter(EmployeeDB.id == employee_id).first()

    def get_employee_by_referral_code(self, code: str) -> Optional[EmployeeDB]:
        return self.db.query(EmployeeDB).filter(EmployeeDB.referral_code == code).first()

    def list_employees(self) -> List[EmployeeDB]:
        return self.db.query(EmployeeDB).order_by(EmployeeDB.total_commission.desc()).all()

    def set_employee_active(self, employee_id: str, is_active: bool) -> EmployeeDB:
        """Admin activation toggle. Employees are deactivated, never deleted."""
        employee = self.get_employee(employee_id)
        if employee is None:
            raise NotFoundError("Employee not found")
        employee.is_active = is_active
        self.db.flush()
        return employee

    def record_commission_totals(self, employee_id: str, amount: Decimal, points: int = 1) -> None:
        """
        Add a commission award to the employee aggregates in one statement.
        The tier is derived from the post-increment point total.
        """
        new_points = EmployeeDB.total_points + points
        tier = cast(
            case(
                *[(new_points >= threshold, t.value) for threshold, t in TIER_THRESHOLDS[:-1]],
                else_=PerformanceTier.BRONZE.value,
            ),
            EmployeeDB.performance_tier.type,
        )
        updated = (
            self.db.query(EmployeeDB)
            .filter(EmployeeDB.id == employee_id)
            .update(
                {
                    EmployeeDB.total_commission: EmployeeDB.total_commission + amount,
                    EmployeeDB.total_points: new_points,
                    EmployeeDB.performance_tier: tier,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            raise NotFoundError("Employee not found")

    # =========================================================================
    # PLANS
    # =========================================================================

    def list_plans(self, active_only: bool = True) -> List[SubscriptionPlanDB]:
        query = self.db.query(SubscriptionPlanDB)
        if active_only:
            query = query.filter(SubscriptionPlanDB.is_active.is_(True))
        return query.order_by(SubscriptionPlanDB.price, SubscriptionPlanDB.letter_count).all()

    def get_plan(self, plan_id: str) -> Optional[SubscriptionPlanDB]:
        return self.db.query(SubscriptionPlanDB).filter(SubscriptionPlanDB.id == plan_id).first()

    def seed_default_plans(self) -> int:
        """Create the default catalog when no plans exist. Returns plans created."""
        if self.db.query(SubscriptionPlanDB).count() > 0:
            return 0
        for plan in DEFAULT_PLANS:
            self.db.add(SubscriptionPlanDB(id=str(uuid4()), is_active=True, **plan))
        self.db.flush()
        logger.info(f"Seeded {len(DEFAULT_PLANS)} default subscription plans")
        return len(DEFAULT_PLANS)

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def get_subscription(self, subscription_id: str) -> Optional[UserSubscriptionDB]:
        return (
            self.db.query(UserSubscriptionDB)
            .filter(UserSubscriptionDB.id == subscription_id)
            .first()
        )

    def get_active_subscription(self, user_id: str) -> Optional[UserSubscriptionDB]:
        """The user's single active subscription, expiring it if past its term."""
        subscription = (
            self.db.query(UserSubscriptionDB)
            .filter(
                UserSubscriptionDB.user_id == user_id,
                UserSubscriptionDB.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(UserSubscriptionDB.created_at.desc())
            .first()
        )
        if subscription is None:
            return None

        if subscription.expires_at is not None and subscription.expires_at <= datetime.utcnow():
            subscription.status = SubscriptionStatus.EXPIRED
            self.db.flush()
            logger.info(f"Subscription {subscription.id} expired at {subscription.expires_at}")
            return None
        return subscription

    def create_subscription(
        self,
        user_id: str,
        plan: SubscriptionPlanDB,
        original_price: Decimal,
        discount_amount: Decimal,
        final_price: Decimal,
        referral_code: Optional[str] = None,
    ) -> UserSubscriptionDB:
        """
        Create an active subscription holding the plan's full allotment.
        A previously active subscription of the same user is cancelled.
        """
        now = datetime.utcnow()
        (
            self.db.query(UserSubscriptionDB)
            .filter(
                UserSubscriptionDB.user_id == user_id,
                UserSubscriptionDB.status == SubscriptionStatus.ACTIVE,
            )
            .update(
                {
                    UserSubscriptionDB.status: SubscriptionStatus.CANCELLED,
                    UserSubscriptionDB.cancelled_at: now,
                },
                synchronize_session=False,
            )
        )

        subscription = UserSubscriptionDB(
            id=str(uuid4()),
            user_id=user_id,
            plan_id=plan.id,
            referral_code_used=referral_code or None,
            original_price=original_price,
            discount_amount=discount_amount,
            final_price=final_price,
            letters_remaining=plan.letter_count,
            letters_used=0,
            status=SubscriptionStatus.ACTIVE,
            expires_at=now + YEARLY_TERM if plan.billing_cycle == BillingCycle.YEARLY else None,
            created_at=now,
        )
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def apply_credit_delta(self, subscription_id: str, remaining_delta: int, used_delta: int) -> bool:
        """
        Move credits with a single relative UPDATE.

        The row only changes while the subscription is active and the
        remaining balance stays non-negative, so two concurrent
        consumers of the last credit cannot both succeed.
        Returns True when the row was updated.
        """
        updated = (
            self.db.query(UserSubscriptionDB)
            .filter(
                UserSubscriptionDB.id == subscription_id,
                UserSubscriptionDB.status == SubscriptionStatus.ACTIVE,
                UserSubscriptionDB.letters_remaining + remaining_delta >= 0,
                UserSubscriptionDB.letters_used + used_delta >= 0,
            )
            .update(
                {
                    UserSubscriptionDB.letters_remaining: UserSubscriptionDB.letters_remaining + remaining_delta,
                    UserSubscriptionDB.letters_used: UserSubscriptionDB.letters_used + used_delta,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def consume_credit(self, subscription_id: str) -> bool:
        """Transfer one credit from remaining to used."""
        return self.apply_credit_delta(subscription_id, -1, +1)

    def admin_adjust_credits(self, subscription_id: str, delta: int) -> UserSubscriptionDB:
        """
        Explicit admin correction of the remaining balance.
        This is the only path that changes the subscription's total allotment.
        """
        updated = (
            self.db.query(UserSubscriptionDB)
            .filter(
                UserSubscriptionDB.id == subscription_id,
                UserSubscriptionDB.letters_remaining + delta >= 0,
            )
            .update(
                {UserSubscriptionDB.letters_remaining: UserSubscriptionDB.letters_remaining + delta},
                synchronize_session=False,
            )
        )
        if updated == 0:
            if self.get_subscription(subscription_id) is None:
                raise NotFoundError("Subscription not found")
            raise CapacityError("Adjustment would make letters_remaining negative")
        logger.warning(f"Admin credit correction on subscription {subscription_id}: {delta:+d}")
        subscription = self.get_subscription(subscription_id)
        self.db.refresh(subscription)
        return subscription

"""
Commission Engine

Referral pricing and commission awards. A referral code only counts when it
belongs to an active employee; the employee's rate is snapshotted onto the
commission record at award time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models.db_models import (
    CommissionRecordDB, CommissionStatus, EmployeeDB, SubscriptionPlanDB, UserSubscriptionDB,
)
from .accounts import AccountStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
POINTS_PER_REFERRAL = 1


def to_cents(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    referral_code: Optional[str] = None  # Only set when the code was honoured

    @property
    def amount_cents(self) -> int:
        return int((self.final_price * 100).to_integral_value(rounding=ROUND_HALF_UP))


class CommissionEngine:
    """Referral discounts and commission ledger for one session."""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountStore(db)

    def resolve_referral(self, referral_code: Optional[str]) -> Optional[EmployeeDB]:
        """Active employee owning ``referral_code``, or None."""
        if not referral_code:
            return None
        employee = self.accounts.get_employee_by_referral_code(referral_code.strip())
        if employee is None or not employee.is_active:
            return None
        return employee

    def quote_price(self, plan: SubscriptionPlanDB, referral_code: Optional[str] = None) -> PriceQuote:
        """
        Price snapshot for a purchase. A valid referral code stays on the
        quote even when its discount is zero.
        """
        original = to_cents(plan.price)
        employee = self.resolve_referral(referral_code)
        if employee is None:
            return PriceQuote(original, Decimal("0.00"), original)

        discount = to_cents(original * Decimal(employee.discount_percentage or 0) / Decimal(100))
        return PriceQuote(original, discount, original - discount, employee.referral_code)

    def award(self, subscription: UserSubscriptionDB, referral_code: Optional[str]) -> Optional[CommissionRecordDB]:
        """
        Record the commission for a referred purchase and bump the employee's
        totals. Returns None when no valid, active referral code was used.
        """
        employee = self.resolve_referral(referral_code)
        if employee is None:
            if referral_code:
                logger.info(f"No commission for subscription {subscription.id} - code {referral_code!r} not active")
            return None

        rate = Decimal(str(employee.commission_rate))
        amount = to_cents(Decimal(str(subscription.final_price)) * rate)
        record = CommissionRecordDB(
            id=str(uuid4()),
            employee_id=employee.id,
            subscription_id=subscription.id,
            commission_amount=amount,
            points_earned=POINTS_PER_REFERRAL,
            commission_rate=rate,
            status=CommissionStatus.PENDING,
            created_at=datetime.utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        self.accounts.record_commission_totals(employee.id, amount, POINTS_PER_REFERRAL)

        logger.info(f"Commission {amount} awarded to employee {employee.id} for subscription {subscription.id}")
        return record

    def list_for_employee(self, employee_id: str) -> List[CommissionRecordDB]:
        return (
            self.db.query(CommissionRecordDB)
            .filter(CommissionRecordDB.employee_id == employee_id)
            .order_by(CommissionRecordDB.created_at.desc())
            .all()
        )

    def mark_paid(self, record_id: str) -> CommissionRecordDB:
        """pending -> paid. Already paid records are returned unchanged."""
        record = self.db.query(CommissionRecordDB).filter(CommissionRecordDB.id == record_id).first()
        if record is None:
            raise NotFoundError("Commission record not found")
        if CommissionStatus(record.status) == CommissionStatus.PENDING:
            record.status = CommissionStatus.PAID
            record.paid_at = datetime.utcnow()
            self.db.flush()
        return record

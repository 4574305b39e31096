"""
LetterDesk - SQLAlchemy ORM Models
Accounts, subscriptions, letters and the commission ledger.
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, JSON, ForeignKey,
    Enum as SQLEnum, Boolean,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Account roles. Fixed for the lifetime of an account."""
    USER = "user"
    EMPLOYEE = "employee"
    ADMIN = "admin"


class LetterStatus(str, Enum):
    """States in the letter lifecycle."""
    REQUESTED = "requested"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    COMPLETED = "completed"
    DOWNLOADED = "downloaded"


class BillingCycle(str, Enum):
    ONE_TIME = "one-time"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PerformanceTier(str, Enum):
    """Employee tier, derived from referral count."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


def _enum_column(enum_cls, name: str, **kwargs) -> Column:
    # Persist the lowercase values, not the member names
    return Column(
        SQLEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


# =============================================================================
# ACCOUNTS
# =============================================================================

class UserDB(Base):
    """User account."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    role = _enum_column(UserRole, "user_role", nullable=False, default=UserRole.USER)
    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = relationship("EmployeeDB", back_populates="user", uselist=False)
    letters = relationship("LetterDB", back_populates="owner")
    subscriptions = relationship("UserSubscriptionDB", back_populates="user")


class EmployeeDB(Base):
    """
    1:1 extension of a user with role=employee.
    Totals are only changed through relative updates in AccountStore.
    """
    __tablename__ = "employees"

    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    referral_code = Column(String(64), unique=True, nullable=False, index=True)
    commission_rate = Column(Numeric(4, 3), nullable=False, default=0.05)  # Fraction 0-1
    discount_percentage = Column(Integer, nullable=False, default=20)
    is_active = Column(Boolean, nullable=False, default=True)
    total_commission = Column(Numeric(10, 2), nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    performance_tier = _enum_column(
        PerformanceTier, "performance_tier", nullable=False, default=PerformanceTier.BRONZE
    )
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="employee")
    commissions = relationship("CommissionRecordDB", back_populates="employee")


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

class SubscriptionPlanDB(Base):
    """
    Plan catalog entry. Never edited once purchased; price changes are a
    new plan so historical subscriptions keep their pricing.
    """
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    letter_count = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    billing_cycle = _enum_column(BillingCycle, "billing_cycle", nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    features = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)


class UserSubscriptionDB(Base):
    """
    A purchased letter allotment.
    letters_remaining + letters_used is fixed at creation.
    """
    __tablename__ = "user_subscriptions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False)
    referral_code_used = Column(String(64), nullable=True)

    original_price = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    final_price = Column(Numeric(10, 2), nullable=False)

    letters_remaining = Column(Integer, nullable=False)
    letters_used = Column(Integer, nullable=False, default=0)

    status = _enum_column(
        SubscriptionStatus, "subscription_status", nullable=False,
        default=SubscriptionStatus.ACTIVE, index=True,
    )
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    user = relationship("UserDB", back_populates="subscriptions")
    plan = relationship("SubscriptionPlanDB")


# =============================================================================
# LETTERS
# =============================================================================

class LetterDB(Base):
    """A requested legal letter and its lifecycle state."""
    __tablename__ = "letters"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(String(36), ForeignKey("user_subscriptions.id"), nullable=True)

    # Sender / recipient. Addresses: {"street", "city", "state", "zip", "country"}
    sender_name = Column(String(255), nullable=False)
    sender_firm_name = Column(String(255), nullable=True)
    sender_address = Column(JSON, nullable=False)
    recipient_name = Column(String(255), nullable=False)
    recipient_address = Column(JSON, nullable=False)

    # Request content
    subject = Column(String(500), nullable=False)
    conflict_description = Column(Text, nullable=False)
    desired_resolution = Column(Text, nullable=False)
    additional_notes = Column(Text, nullable=True)

    # AI drafting (prompt kept as audit trail)
    ai_prompt = Column(Text, nullable=True)
    ai_generated_content = Column(Text, nullable=True)
    ai_summary = Column(Text, nullable=True)
    generation_attempts = Column(Integer, nullable=False, default=0)
    last_generation_error = Column(Text, nullable=True)

    # Attorney review
    attorney_notes = Column(Text, nullable=True)
    final_content = Column(Text, nullable=True)
    document_ref = Column(String(255), nullable=True)  # Rendered PDF file name

    status = _enum_column(
        LetterStatus, "letter_status", nullable=False,
        default=LetterStatus.REQUESTED, index=True,
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    generation_started_at = Column(DateTime, nullable=True)
    ai_generated_at = Column(DateTime, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    downloaded_at = Column(DateTime, nullable=True)

    owner = relationship("UserDB", back_populates="letters")


# =============================================================================
# COMMISSIONS / PAYMENTS
# =============================================================================

class CommissionRecordDB(Base):
    """Ledger entry. Only the payment status ever changes."""
    __tablename__ = "commission_records"

    id = Column(String(36), primary_key=True)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False, index=True)
    subscription_id = Column(String(36), ForeignKey("user_subscriptions.id"), nullable=False, unique=True)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    points_earned = Column(Integer, nullable=False, default=1)
    commission_rate = Column(Numeric(4, 3), nullable=False)  # Snapshot at award time
    status = _enum_column(
        CommissionStatus, "commission_status", nullable=False, default=CommissionStatus.PENDING
    )
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("EmployeeDB", back_populates="commissions")


class PaymentEventDB(Base):
    """
    Processed payment-processor events, keyed by the processor's event id.
    A redelivered webhook hits the unique constraint and is skipped.
    """
    __tablename__ = "payment_events"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(255), unique=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    payment_intent_id = Column(String(255), nullable=True)
    subscription_id = Column(String(36), ForeignKey("user_subscriptions.id"), nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow)

"""LetterDesk - Data Models"""
from .db_models import (
    # Enums
    UserRole, LetterStatus, BillingCycle, SubscriptionStatus,
    CommissionStatus, PerformanceTier,
    # Tables
    UserDB, EmployeeDB, SubscriptionPlanDB, UserSubscriptionDB,
    LetterDB, CommissionRecordDB, PaymentEventDB,
)

__all__ = [
    "UserRole", "LetterStatus", "BillingCycle", "SubscriptionStatus",
    "CommissionStatus", "PerformanceTier",
    "UserDB", "EmployeeDB", "SubscriptionPlanDB", "UserSubscriptionDB",
    "LetterDB", "CommissionRecordDB", "PaymentEventDB",
]

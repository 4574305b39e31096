"""
LetterDesk - API Schemas
Pydantic request/response models shared by routers and services.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .db_models import (
    LetterStatus, UserRole, BillingCycle, SubscriptionStatus,
    CommissionStatus, PerformanceTier,
)


# =============================================================================
# LETTERS
# =============================================================================

class Address(BaseModel):
    """Structured postal address."""
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip: str = Field(min_length=1)
    country: str = "USA"


class LetterCreateRequest(BaseModel):
    sender_name: str = Field(min_length=1)
    sender_firm_name: Optional[str] = None
    sender_address: Address
    recipient_name: str = Field(min_length=1)
    recipient_address: Address
    subject: str = Field(min_length=1, max_length=500)
    conflict_description: str = Field(min_length=1)
    desired_resolution: str = Field(min_length=1)
    additional_notes: Optional[str] = None


class LetterUpdateRequest(BaseModel):
    """Attorney/admin review update. Only reviewing and completed are settable."""
    status: Optional[LetterStatus] = None
    attorney_notes: Optional[str] = None
    final_content: Optional[str] = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in (LetterStatus.REVIEWING, LetterStatus.COMPLETED):
            raise ValueError('Status may only be set to reviewing or completed')
        return v


class LetterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    subscription_id: Optional[str] = None
    sender_name: str
    sender_firm_name: Optional[str] = None
    sender_address: Address
    recipient_name: str
    recipient_address: Address
    subject: str
    conflict_description: str
    desired_resolution: str
    additional_notes: Optional[str] = None
    ai_prompt: Optional[str] = None
    ai_generated_content: Optional[str] = None
    ai_summary: Optional[str] = None
    generation_attempts: int = 0
    last_generation_error: Optional[str] = None
    attorney_notes: Optional[str] = None
    final_content: Optional[str] = None
    document_ref: Optional[str] = None
    status: LetterStatus
    created_at: Optional[datetime] = None
    generation_started_at: Optional[datetime] = None
    ai_generated_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    downloaded_at: Optional[datetime] = None


# =============================================================================
# ACCOUNTS / SUBSCRIPTIONS
# =============================================================================

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str
    role: UserRole
    phone: Optional[str] = None
    company_name: Optional[str] = None
    created_at: Optional[datetime] = None


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    letter_count: int
    price: float
    billing_cycle: BillingCycle
    is_active: bool
    features: List[str] = []


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    plan_id: str
    referral_code_used: Optional[str] = None
    original_price: float
    discount_amount: float
    final_price: float
    letters_remaining: int
    letters_used: int
    status: SubscriptionStatus
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    referral_code: str
    commission_rate: float
    discount_percentage: int
    is_active: bool
    total_commission: float
    total_points: int
    performance_tier: PerformanceTier
    created_at: Optional[datetime] = None


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    employee_id: str
    subscription_id: str
    commission_amount: float
    points_earned: int
    commission_rate: float
    status: CommissionStatus
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

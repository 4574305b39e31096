"""
LetterDesk - Admin Router
Console views plus the operator actions: document download and re-render,
employee activation, commission payout and credit correction.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_capability
from ..database import get_db
from ..models.db_models import UserDB
from ..models.schemas import (
    CommissionResponse, EmployeeResponse, LetterResponse, SubscriptionResponse, UserResponse,
)
from ..services.accounts import AccountStore
from ..services.commission import CommissionEngine
from ..services.letter_repository import LetterRepository
from ..services.lifecycle import LetterLifecycleEngine
from .letters import get_lifecycle_engine, pdf_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class DashboardResponse(BaseModel):
    """Admin dashboard aggregates."""
    total_users: int
    total_letters: int
    letters_by_status: dict
    active_employees: int
    recent_letters: List[LetterResponse]
    top_employees: List[EmployeeResponse]


class AdminUserItem(BaseModel):
    user: UserResponse
    letter_count: int
    subscription: Optional[SubscriptionResponse] = None


class AdminEmployeeItem(BaseModel):
    employee: EmployeeResponse
    full_name: str
    email: str


class EmployeeUpdateRequest(BaseModel):
    is_active: bool


class CreditAdjustmentRequest(BaseModel):
    delta: int
    reason: Optional[str] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    admin: UserDB = Depends(require_capability("admin:dashboard")),
    db: Session = Depends(get_db),
):
    store = AccountStore(db)
    letters = LetterRepository(db)
    all_letters = letters.list_all()
    employees = store.list_employees()

    return DashboardResponse(
        total_users=len(store.list_users()),
        total_letters=len(all_letters),
        letters_by_status=letters.count_by_status(),
        active_employees=sum(1 for e in employees if e.is_active),
        recent_letters=[LetterResponse.model_validate(l) for l in all_letters[:10]],
        top_employees=[EmployeeResponse.model_validate(e) for e in employees[:5]],
    )


@router.get("/users", response_model=List[AdminUserItem])
def list_users(
    admin: UserDB = Depends(require_capability("admin:users")),
    db: Session = Depends(get_db),
):
    store = AccountStore(db)
    letters = LetterRepository(db)
    items = []
    for user in store.list_users():
        subscription = store.get_active_subscription(user.id)
        items.append(AdminUserItem(
            user=UserResponse.model_validate(user),
            letter_count=len(letters.list_by_owner(user.id)),
            subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        ))
    db.commit()  # Persist expiry flips
    return items


@router.get("/employees", response_model=List[AdminEmployeeItem])
def list_employees(
    admin: UserDB = Depends(require_capability("admin:employees")),
    db: Session = Depends(get_db),
):
    return [
        AdminEmployeeItem(
            employee=EmployeeResponse.model_validate(employee),
            full_name=employee.user.full_name,
            email=employee.user.email,
        )
        for employee in AccountStore(db).list_employees()
    ]


@router.patch("/employees/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: str,
    request: EmployeeUpdateRequest,
    admin: UserDB = Depends(require_capability("admin:employees")),
    db: Session = Depends(get_db),
):
    """Activate or deactivate an employee's referral code."""
    employee = AccountStore(db).set_employee_active(employee_id, request.is_active)
    db.commit()
    db.refresh(employee)
    logger.info(f"Admin {admin.id} set employee {employee_id} active={request.is_active}")
    return EmployeeResponse.model_validate(employee)


@router.post("/commissions/{commission_id}/pay", response_model=CommissionResponse)
def pay_commission(
    commission_id: str,
    admin: UserDB = Depends(require_capability("admin:commissions")),
    db: Session = Depends(get_db),
):
    record = CommissionEngine(db).mark_paid(commission_id)
    db.commit()
    db.refresh(record)
    return CommissionResponse.model_validate(record)


@router.post("/subscriptions/{subscription_id}/adjust-credits", response_model=SubscriptionResponse)
def adjust_credits(
    subscription_id: str,
    request: CreditAdjustmentRequest,
    admin: UserDB = Depends(require_capability("admin:credits")),
    db: Session = Depends(get_db),
):
    """Manual correction of a subscription's remaining letters."""
    subscription = AccountStore(db).admin_adjust_credits(subscription_id, request.delta)
    db.commit()
    db.refresh(subscription)
    logger.info(f"Admin {admin.id} adjusted subscription {subscription_id} by {request.delta}: {request.reason or '-'}")
    return SubscriptionResponse.model_validate(subscription)


@router.get("/letters/{letter_id}/download")
def admin_download_letter(
    letter_id: str,
    admin: UserDB = Depends(require_capability("letters:admin_download")),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Serve the PDF without changing the letter's status."""
    letter, path = engine.admin_download(admin, letter_id)
    return pdf_response(path, letter.id)


@router.post("/letters/{letter_id}/render", response_model=LetterResponse)
def rerender_letter(
    letter_id: str,
    admin: UserDB = Depends(require_capability("letters:render")),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Retry rendering for a completed letter whose PDF failed or went missing."""
    letter = engine.render_document(admin, letter_id)
    return LetterResponse.model_validate(letter)

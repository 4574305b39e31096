"""
LetterDesk - Employee Router
Referral dashboard for employee accounts.
"""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_capability
from ..database import get_db
from ..errors import NotFoundError
from ..models.db_models import CommissionStatus, UserDB
from ..models.schemas import CommissionResponse, EmployeeResponse
from ..services.accounts import AccountStore, TIER_THRESHOLDS
from ..services.commission import CommissionEngine

router = APIRouter(prefix="/employee", tags=["employee"])


class EmployeeDashboardResponse(BaseModel):
    employee: EmployeeResponse
    commissions: List[CommissionResponse]
    pending_commission: float
    paid_commission: float
    referrals_to_next_tier: int


def referrals_to_next_tier(points: int) -> int:
    """0 once the top tier is reached."""
    for threshold, _ in reversed(TIER_THRESHOLDS):
        if points < threshold:
            return threshold - points
    return 0


@router.get("/dashboard", response_model=EmployeeDashboardResponse)
def get_dashboard(
    current_user: UserDB = Depends(require_capability("employee:dashboard")),
    db: Session = Depends(get_db),
):
    employee = AccountStore(db).get_employee(current_user.id)
    if employee is None:
        raise NotFoundError("Employee not found")

    commissions = CommissionEngine(db).list_for_employee(employee.id)
    pending = sum(float(c.commission_amount) for c in commissions if CommissionStatus(c.status) == CommissionStatus.PENDING)
    paid = sum(float(c.commission_amount) for c in commissions if CommissionStatus(c.status) == CommissionStatus.PAID)

    return EmployeeDashboardResponse(
        employee=EmployeeResponse.model_validate(employee),
        commissions=[CommissionResponse.model_validate(c) for c in commissions],
        pending_commission=round(pending, 2),
        paid_commission=round(paid, 2),
        referrals_to_next_tier=referrals_to_next_tier(employee.total_points),
    )

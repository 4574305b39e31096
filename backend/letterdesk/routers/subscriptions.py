"""
LetterDesk - Subscription Router
Plan catalog and the caller's active subscription.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models.db_models import UserDB
from ..models.schemas import PlanResponse, SubscriptionResponse
from ..services.accounts import AccountStore

router = APIRouter(tags=["subscriptions"])


@router.get("/subscription-plans", response_model=List[PlanResponse])
def list_plans(db: Session = Depends(get_db)):
    """Active plan catalog."""
    return [PlanResponse.model_validate(plan) for plan in AccountStore(db).list_plans()]


@router.get("/user/subscription", response_model=Optional[SubscriptionResponse])
def get_user_subscription(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current active subscription, or null."""
    subscription = AccountStore(db).get_active_subscription(current_user.id)
    db.commit()  # Persist an expiry flip, if any
    if subscription is None:
        return None
    return SubscriptionResponse.model_validate(subscription)

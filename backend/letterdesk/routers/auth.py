"""
LetterDesk - Authentication Router
Handles signup, login and session verification.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..auth import create_access_token, get_current_user, hash_password, verify_password
from ..database import get_db
from ..errors import NotAuthenticatedError
from ..models.db_models import UserDB, UserRole
from ..models.schemas import UserResponse
from ..services.accounts import AccountStore
from ..services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: str
    user_type: UserRole = UserRole.USER
    phone: Optional[str] = None
    company_name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        if not v.strip():
            raise ValueError('Full name is required')
        return v.strip()

    @field_validator('user_type')
    @classmethod
    def validate_user_type(cls, v):
        # Admin accounts are created with scripts/seed_admin.py only
        if v == UserRole.ADMIN:
            raise ValueError('user_type must be user or employee')
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/signup", response_model=AuthResponse)
def signup(
    request: SignupRequest,
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    """Register a user or employee account. Employees get a referral code."""
    store = AccountStore(db)
    if store.get_user_by_email(request.email) is not None:
        raise HTTPException(status_code=400, detail="User already exists")

    user = store.create_user(
        email=request.email,
        password_hash=hash_password(request.password),
        full_name=request.full_name,
        role=request.user_type,
        phone=request.phone,
        company_name=request.company_name,
    )
    if request.user_type == UserRole.EMPLOYEE:
        employee = store.create_employee(user)
        logger.info(f"Employee {user.id} registered with referral code {employee.referral_code}")

    db.commit()
    db.refresh(user)

    settings = services.settings
    token = create_access_token(user.id, settings.session_secret, settings.token_expire_days)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    user = AccountStore(db).get_user_by_email(request.email)
    if user is None or not verify_password(request.password, user.password_hash):
        raise NotAuthenticatedError("Invalid credentials")

    settings = services.settings
    token = create_access_token(user.id, settings.session_secret, settings.token_expire_days)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=MeResponse)
async def me(current_user: UserDB = Depends(get_current_user)):
    return MeResponse(user=UserResponse.model_validate(current_user))

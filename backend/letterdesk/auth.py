"""
LetterDesk - Authentication Utilities
Password hashing, JWT tokens, and auth dependencies
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import bcrypt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .errors import NotAuthenticatedError
from .models.db_models import UserDB
from .policies import authorize

ALGORITHM = "HS256"

# Missing credentials are reported as 401 by get_current_user, not 403
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(user_id: str, secret: str, expire_days: int = 7) -> str:
    """Create a JWT access token."""
    expire = datetime.now(timezone.utc) + timedelta(days=expire_days)
    to_encode = {
        "sub": user_id,
        "exp": expire,
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: str) -> Optional[dict]:
    """Decode and validate a JWT token. Expired tokens fail validation."""
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> UserDB:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and fetches user from database.
    """
    if credentials is None or not credentials.credentials:
        raise NotAuthenticatedError("Not authenticated")

    secret = request.app.state.services.settings.session_secret
    payload = decode_token(credentials.credentials, secret)
    if payload is None:
        raise NotAuthenticatedError("Could not validate credentials")

    user_id = payload.get("sub")
    if user_id is None:
        raise NotAuthenticatedError("Could not validate credentials")

    user = db.query(UserDB).filter(UserDB.id == user_id).first()
    if user is None:
        raise NotAuthenticatedError("Could not validate credentials")

    return user


def require_capability(operation: str) -> Callable:
    """
    Dependency factory enforcing the policy for ``operation``.

        @router.get("/dashboard")
        async def dashboard(user: UserDB = Depends(require_capability("admin:dashboard"))):
    """
    async def dependency(current_user: UserDB = Depends(get_current_user)) -> UserDB:
        authorize(current_user, operation)
        return current_user

    return dependency

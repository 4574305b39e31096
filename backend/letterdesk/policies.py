"""
LetterDesk - Authorization Policy

One table maps each protected operation to the roles allowed to perform it.
Handlers never compare role strings themselves; they ask ``authorize``.
"""
from typing import Dict, FrozenSet

from .errors import ForbiddenError
from .models.db_models import UserDB, UserRole

USER = UserRole.USER
EMPLOYEE = UserRole.EMPLOYEE
ADMIN = UserRole.ADMIN

POLICIES: Dict[str, FrozenSet[UserRole]] = {
    # Letters
    "letters:create": frozenset({USER}),
    "letters:list_all": frozenset({ADMIN}),
    "letters:read_any": frozenset({ADMIN}),
    "letters:review": frozenset({ADMIN}),
    "letters:render": frozenset({ADMIN}),
    "letters:admin_download": frozenset({ADMIN}),
    # Purchases
    "payments:purchase": frozenset({USER}),
    # Employee
    "employee:dashboard": frozenset({EMPLOYEE}),
    # Admin console
    "admin:dashboard": frozenset({ADMIN}),
    "admin:users": frozenset({ADMIN}),
    "admin:employees": frozenset({ADMIN}),
    "admin:commissions": frozenset({ADMIN}),
    "admin:credits": frozenset({ADMIN}),
}


def is_allowed(user: UserDB, operation: str) -> bool:
    allowed = POLICIES.get(operation)
    if allowed is None:
        raise KeyError(f"No policy defined for {operation!r}")
    return UserRole(user.role) in allowed


def authorize(user: UserDB, operation: str) -> None:
    """Raise ForbiddenError unless the user's role may perform ``operation``."""
    if not is_allowed(user, operation):
        raise ForbiddenError("Access denied")


def authorize_owner(user: UserDB, owner_id: str) -> None:
    """Only the owner of a resource."""
    if user.id != owner_id:
        raise ForbiddenError("Access denied")


def authorize_owner_or(user: UserDB, owner_id: str, operation: str) -> None:
    """The owner, or any role allowed to perform ``operation``."""
    if user.id == owner_id:
        return
    authorize(user, operation)

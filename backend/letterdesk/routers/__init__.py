"""LetterDesk - API Routers"""
from .auth import router as auth_router
from .subscriptions import router as subscriptions_router
from .payments import router as payments_router
from .letters import router as letters_router
from .admin import router as admin_router
from .employee import router as employee_router
from .scheduler import router as scheduler_router

__all__ = [
    "auth_router",
    "subscriptions_router",
    "payments_router",
    "letters_router",
    "admin_router",
    "employee_router",
    "scheduler_router",
]

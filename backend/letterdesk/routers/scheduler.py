"""
Scheduler API Routes

Internal endpoints for system-automatic tasks, called by an external cron.
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import ForbiddenError, ServiceUnavailableError
from ..services.container import AppServices, get_services
from ..services.lifecycle import LetterLifecycleEngine

router = APIRouter(prefix="/internal", tags=["scheduler"])


class ReapResponse(BaseModel):
    letters_reset: int
    stall_minutes: int


async def verify_internal_key(
    x_internal_key: Optional[str] = Header(None),
    services: AppServices = Depends(get_services),
) -> bool:
    """Verify internal API key for scheduler endpoints."""
    expected = services.settings.internal_api_key
    if not expected:
        raise ServiceUnavailableError("Internal endpoints are disabled - INTERNAL_API_KEY not configured")
    if x_internal_key != expected:
        raise ForbiddenError("Invalid internal API key")
    return True


@router.post("/reap-stalled-generations", response_model=ReapResponse)
def reap_stalled_generations(
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
    _: bool = Depends(verify_internal_key),
):
    """
    Reset letters stuck in ``generating`` back to ``requested`` so the
    owner can retry. No credits are touched.
    """
    minutes = services.settings.generation_stall_minutes
    reset = LetterLifecycleEngine(db).reap_stalled(timedelta(minutes=minutes))
    return ReapResponse(letters_reset=reset, stall_minutes=minutes)

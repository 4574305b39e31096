"""
LetterDesk - Letters API Router

Letter intake, attorney review and download. The lifecycle rules live in
LetterLifecycleEngine; handlers only translate HTTP to engine calls.
"""
from __future__ import annotations
import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models.db_models import UserDB
from ..models.schemas import LetterCreateRequest, LetterResponse, LetterUpdateRequest
from ..policies import authorize_owner_or, is_allowed
from ..services.container import AppServices, get_services
from ..services.lifecycle import LetterLifecycleEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/letters", tags=["letters"])


def get_lifecycle_engine(
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
) -> LetterLifecycleEngine:
    """Per-request engine bound to the request's session."""
    return LetterLifecycleEngine(
        db,
        content_generator=services.content_generator,
        renderer=services.renderer,
        dispatcher=services.generation_pool,
    )


def pdf_response(path, letter_id: str) -> FileResponse:
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=f"letter-{letter_id}.pdf",
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[LetterResponse])
def list_letters(
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Own letters, or every letter for roles allowed to see all."""
    if is_allowed(current_user, "letters:list_all"):
        letters = engine.letters.list_all()
    else:
        letters = engine.letters.list_by_owner(current_user.id)
    return [LetterResponse.model_validate(letter) for letter in letters]


@router.post("", response_model=LetterResponse)
def create_letter(
    request: LetterCreateRequest,
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """
    Create a letter request. Returns at once with status ``requested``;
    poll GET /letters/{id} to follow drafting.

    400 when no credit is available, 503 when AI drafting is not configured.
    """
    letter = engine.create_letter(current_user, request)
    return LetterResponse.model_validate(letter)


@router.get("/{letter_id}", response_model=LetterResponse)
def get_letter(
    letter_id: str,
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    letter = engine.letters.get_or_raise(letter_id)
    authorize_owner_or(current_user, letter.user_id, "letters:read_any")
    return LetterResponse.model_validate(letter)


@router.patch("/{letter_id}", response_model=LetterResponse)
def update_letter(
    letter_id: str,
    update: LetterUpdateRequest,
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Attorney review. Setting status=completed renders the PDF."""
    letter = engine.review_letter(current_user, letter_id, update)
    return LetterResponse.model_validate(letter)


@router.post("/{letter_id}/generate", response_model=LetterResponse)
def retry_generation(
    letter_id: str,
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Retry drafting after a failed attempt. No credit was used by the failure."""
    letter = engine.retry_generation(current_user, letter_id)
    return LetterResponse.model_validate(letter)


@router.get("/{letter_id}/download")
def download_letter(
    letter_id: str,
    current_user: UserDB = Depends(get_current_user),
    engine: LetterLifecycleEngine = Depends(get_lifecycle_engine),
):
    """Owner download. Marks the letter downloaded on first fetch."""
    letter, path = engine.download(current_user, letter_id)
    return pdf_response(path, letter.id)

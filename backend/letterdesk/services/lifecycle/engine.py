"""
Letter Lifecycle Engine

Drives a letter from request to download:

    requested -> generating -> reviewing -> completed -> downloaded

Core guarantees:
- A credit is deducted only after content was generated, and at most once
  per letter. The requested -> generating flip is a conditional UPDATE, so
  only one worker can ever own a generation attempt.
- The deduction is a relative decrement on the current balance, committed in
  the same transaction that stores the content and moves the letter to
  reviewing. Any failure rolls both back and resets the letter to requested.
- Background failures are logged and recorded on the letter, never raised.
- A rendering fault never blocks the transition to completed.
"""
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ...errors import (
    CapacityError, GenerationError, InvalidTransitionError, NotReadyError,
    RenderError, ServiceUnavailableError,
)
from ...models.db_models import (
    LetterDB, LetterStatus, SubscriptionStatus, UserDB, UserSubscriptionDB,
)
from ...models.schemas import LetterCreateRequest, LetterUpdateRequest
from ...policies import authorize, authorize_owner
from ..accounts import AccountStore
from ..content_generation import ContentGenerator, build_prompt
from ..document_renderer import DocumentRenderer
from ..letter_repository import LetterRepository
from .state_machine import ADMIN, DOWNLOADABLE_STATES, ensure_transition

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class LetterLifecycleEngine:
    """
    Orchestrates the letter lifecycle for one database session.

    Collaborators are injected; any of them may be None when the matching
    integration is not configured, and the operations that need them answer
    with ServiceUnavailableError.
    """

    def __init__(
        self,
        db: Session,
        content_generator: Optional[ContentGenerator] = None,
        renderer: Optional[DocumentRenderer] = None,
        dispatcher=None,
    ):
        self.db = db
        self.content_generator = content_generator
        self.renderer = renderer
        self.dispatcher = dispatcher
        self.letters = LetterRepository(db)
        self.accounts = AccountStore(db)

    # =========================================================================
    # INTAKE
    # =========================================================================

    def create_letter(self, owner: UserDB, request: LetterCreateRequest) -> LetterDB:
        """
        Persist a new letter in ``requested`` and schedule its generation.
        Returns immediately; content is filled in by the background task.
        """
        authorize(owner, "letters:create")
        self._require_generator()
        subscription = self._require_credit(owner.id)

        letter = self.letters.create(owner.id, request, subscription_id=subscription.id)
        self.db.commit()
        self.db.refresh(letter)
        logger.info(f"Letter {letter.id} requested by user {owner.id}")

        self._schedule_generation(letter.id)
        return letter

    def retry_generation(self, owner: UserDB, letter_id: str) -> LetterDB:
        """Re-submit a letter whose earlier generation attempt failed."""
        letter = self.letters.get_or_raise(letter_id)
        authorize_owner(owner, letter.user_id)
        if LetterStatus(letter.status) != LetterStatus.REQUESTED or letter.ai_generated_content:
            raise InvalidTransitionError("Only letters waiting for drafting can be retried")

        self._require_generator()
        subscription = self._require_credit(owner.id)
        if letter.subscription_id != subscription.id:
            letter.subscription_id = subscription.id
        self.db.commit()
        self.db.refresh(letter)

        self._schedule_generation(letter.id)
        return letter

    def _require_generator(self) -> None:
        if self.content_generator is None:
            raise ServiceUnavailableError("AI letter generation is not available - generator not configured")

    def _require_credit(self, user_id: str) -> UserSubscriptionDB:
        subscription = self.accounts.get_active_subscription(user_id)
        if subscription is None or subscription.letters_remaining <= 0:
            self.db.commit()  # Persist an expiry flip, if any
            raise CapacityError("No active subscription or letters remaining")
        return subscription

    def _schedule_generation(self, letter_id: str) -> None:
        if self.dispatcher is None:
            logger.warning(f"No generation dispatcher configured - letter {letter_id} left in requested")
            return
        self.dispatcher.submit(letter_id)

    # =========================================================================
    # GENERATION (background)
    # =========================================================================

    def generate_content(self, letter_id: str) -> bool:
        """
        Draft a letter and deduct its credit. Returns True when the letter
        reached ``reviewing``.

        Safe to call more than once for the same letter: every call after
        the first one that claimed the letter is a no-op.
        """
        letter = self.letters.get(letter_id)
        if letter is None:
            logger.warning(f"Generation skipped - letter {letter_id} not found")
            return False
        if letter.ai_generated_content or LetterStatus(letter.status) != LetterStatus.REQUESTED:
            logger.info(f"Generation skipped - letter {letter_id} is {LetterStatus(letter.status).value}")
            return False
        if self.content_generator is None:
            logger.error(f"Generation skipped - no content generator for letter {letter_id}")
            return False

        claimed = self.letters.transition(
            letter_id,
            [LetterStatus.REQUESTED],
            LetterStatus.GENERATING,
            generation_started_at=datetime.utcnow(),
            generation_attempts=LetterDB.generation_attempts + 1,
        )
        if not claimed:
            self.db.rollback()
            logger.info(f"Generation skipped - letter {letter_id} claimed by another worker")
            return False
        self.db.commit()
        self.db.refresh(letter)

        prompt = build_prompt(letter)
        logger.info(f"Generating content for letter {letter_id} (attempt {letter.generation_attempts})")
        try:
            generated = self.content_generator.generate(prompt)
        except GenerationError as e:
            self._reset_after_failure(letter_id, e.message)
            return False
        except Exception as e:
            # Background task: unexpected faults are recorded, not raised
            logger.exception(f"Unexpected error generating letter {letter_id}")
            self._reset_after_failure(letter_id, f"Unexpected error: {e}")
            return False

        subscription = self._current_subscription(letter)
        if subscription is None or subscription.letters_remaining <= 0:
            self._reset_after_failure(letter_id, "No letters remaining at generation time")
            return False

        if not self.accounts.consume_credit(subscription.id):
            self._reset_after_failure(letter_id, "Credit deduction failed - balance changed concurrently")
            return False

        stored = self.letters.transition(
            letter_id,
            [LetterStatus.GENERATING],
            LetterStatus.REVIEWING,
            subscription_id=subscription.id,
            ai_prompt=prompt,
            ai_generated_content=generated.content,
            ai_summary=generated.summary,
            ai_generated_at=datetime.utcnow(),
            last_generation_error=None,
        )
        if not stored:
            # The reaper reset this letter while we were drafting
            self.db.rollback()
            logger.warning(f"Letter {letter_id} left generating during drafting - result discarded")
            return False
        self.db.commit()

        self.db.refresh(subscription)
        logger.info(
            f"Letter {letter_id} drafted; subscription {subscription.id} has "
            f"{subscription.letters_remaining} letters remaining"
        )
        return True

    def _current_subscription(self, letter: LetterDB) -> Optional[UserSubscriptionDB]:
        """
        Fresh read of the subscription to charge: the one the letter was
        requested against, or the owner's current one if that was replaced.
        """
        subscription = None
        if letter.subscription_id:
            subscription = self.accounts.get_subscription(letter.subscription_id)
            if subscription is not None:
                self.db.refresh(subscription)
        if subscription is None or SubscriptionStatus(subscription.status) != SubscriptionStatus.ACTIVE:
            subscription = self.accounts.get_active_subscription(letter.user_id)
            if subscription is not None:
                self.db.refresh(subscription)
        return subscription

    def _reset_after_failure(self, letter_id: str, error: str) -> None:
        self.db.rollback()
        self.letters.transition(
            letter_id,
            [LetterStatus.GENERATING],
            LetterStatus.REQUESTED,
            last_generation_error=error[:MAX_ERROR_LENGTH],
        )
        self.db.commit()
        logger.error(f"Error generating letter content for {letter_id}: {error} - reset to requested")

    def reap_stalled(self, max_age: timedelta) -> int:
        """
        Reset letters stuck in ``generating`` for longer than ``max_age``.
        Credits are untouched: a stalled attempt never deducted one.
        """
        cutoff = datetime.utcnow() - max_age
        reset = 0
        for letter in self.letters.list_stalled(cutoff):
            if self.letters.transition(
                letter.id,
                [LetterStatus.GENERATING],
                LetterStatus.REQUESTED,
                last_generation_error="Generation stalled - reset by maintenance",
            ):
                reset += 1
                logger.warning(f"Letter {letter.id} stalled in generating since {letter.generation_started_at} - reset")
        self.db.commit()
        return reset

    # =========================================================================
    # REVIEW (admin)
    # =========================================================================

    def review_letter(self, actor: UserDB, letter_id: str, update: LetterUpdateRequest) -> LetterDB:
        """
        Attorney update: notes, final content, and the move to completed.

        Completing renders the merged letter (stored fields overlaid with this
        update) synchronously. A rendering failure is logged and the update is
        still committed without a document reference.
        """
        authorize(actor, "letters:review")
        letter = self.letters.get_for_update(letter_id)
        current = LetterStatus(letter.status)
        fields: Dict[str, Any] = {}

        if update.attorney_notes is not None:
            fields["attorney_notes"] = update.attorney_notes
        if update.final_content is not None:
            if current != LetterStatus.REVIEWING:
                raise InvalidTransitionError("Letter content can only be edited during review")
            fields["final_content"] = update.final_content

        target = update.status
        completing = target == LetterStatus.COMPLETED and current != LetterStatus.COMPLETED
        if target is not None and not (target == LetterStatus.COMPLETED and current == LetterStatus.COMPLETED):
            ensure_transition(current, target, ADMIN)
            fields["status"] = target

        now = datetime.utcnow()
        if current == LetterStatus.REVIEWING and letter.reviewed_at is None:
            fields["reviewed_at"] = now

        if completing:
            fields["completed_at"] = now
            merged = self._merged_view(letter, fields)
            if not (merged.get("final_content") or merged.get("ai_generated_content")):
                raise InvalidTransitionError("Cannot complete a letter without content")
            document_ref = self._render_for_completion(merged)
            if document_ref:
                fields["document_ref"] = document_ref

        self.letters.update(letter_id, **fields)
        self.db.commit()
        self.db.refresh(letter)
        if completing:
            logger.info(f"Letter {letter_id} completed by {actor.id} (document: {letter.document_ref or 'none'})")
        return letter

    def _render_for_completion(self, merged: Dict[str, Any]) -> Optional[str]:
        if self.renderer is None:
            logger.error(f"No document renderer configured - letter {merged['id']} completed without a document")
            return None
        try:
            return self.renderer.render(merged)
        except RenderError as e:
            logger.error(f"Rendering failed for letter {merged['id']}: {e.message} - status change kept")
            return None

    @staticmethod
    def _merged_view(letter: LetterDB, fields: Dict[str, Any]) -> Dict[str, Any]:
        view = {column.name: getattr(letter, column.name) for column in LetterDB.__table__.columns}
        view.update(fields)
        return view

    def render_document(self, actor: UserDB, letter_id: str) -> LetterDB:
        """Operator retry of rendering for a completed letter. Failures surface."""
        authorize(actor, "letters:render")
        letter = self.letters.get_or_raise(letter_id)
        if LetterStatus(letter.status) not in DOWNLOADABLE_STATES:
            raise InvalidTransitionError("Only completed letters can be rendered")
        if self.renderer is None:
            raise ServiceUnavailableError("Document rendering is not available")

        letter.document_ref = self.renderer.render(letter)
        self.db.commit()
        self.db.refresh(letter)
        return letter

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    def download(self, actor: UserDB, letter_id: str) -> Tuple[LetterDB, Path]:
        """
        Owner download. The first one moves the letter to ``downloaded``;
        later ones serve the same file without touching state.
        """
        letter = self.letters.get_or_raise(letter_id)
        authorize_owner(actor, letter.user_id)
        path = self._document_path(letter)

        if LetterStatus(letter.status) == LetterStatus.COMPLETED:
            if self.letters.transition(
                letter_id,
                [LetterStatus.COMPLETED],
                LetterStatus.DOWNLOADED,
                downloaded_at=datetime.utcnow(),
            ):
                logger.info(f"Letter {letter_id} downloaded by owner")
            self.db.commit()
            self.db.refresh(letter)
        return letter, path

    def admin_download(self, actor: UserDB, letter_id: str) -> Tuple[LetterDB, Path]:
        """Admin inspection. Never changes the owner-visible status."""
        authorize(actor, "letters:admin_download")
        letter = self.letters.get_or_raise(letter_id)
        return letter, self._document_path(letter)

    def _document_path(self, letter: LetterDB) -> Path:
        if LetterStatus(letter.status) not in DOWNLOADABLE_STATES or not letter.document_ref:
            raise NotReadyError("Letter document is not ready for download")
        if self.renderer is None:
            raise ServiceUnavailableError("Document storage is not available")
        return self.renderer.resolve(letter.document_ref)

"""
Letter Repository

Create/read/update access to letter records. Status changes that race with
other writers go through ``transition``, a conditional UPDATE that only
applies when the row is still in one of the expected states.
"""
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models.db_models import LetterDB, LetterStatus
from ..models.schemas import LetterCreateRequest


class LetterRepository:
    """Per-session letter persistence."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        request: LetterCreateRequest,
        subscription_id: Optional[str] = None,
    ) -> LetterDB:
        letter = LetterDB(
            id=str(uuid4()),
            user_id=user_id,
            subscription_id=subscription_id,
            sender_name=request.sender_name,
            sender_firm_name=request.sender_firm_name,
            sender_address=request.sender_address.model_dump(),
            recipient_name=request.recipient_name,
            recipient_address=request.recipient_address.model_dump(),
            subject=request.subject,
            conflict_description=request.conflict_description,
            desired_resolution=request.desired_resolution,
            additional_notes=request.additional_notes,
            status=LetterStatus.REQUESTED,
            generation_attempts=0,
            created_at=datetime.utcnow(),
        )
        self.db.add(letter)
        self.db.flush()
        return letter

    def get(self, letter_id: str) -> Optional[LetterDB]:
        return self.db.query(LetterDB).filter(LetterDB.id == letter_id).first()

    def get_or_raise(self, letter_id: str) -> LetterDB:
        letter = self.get(letter_id)
        if letter is None:
            raise NotFoundError("Letter not found")
        return letter

    def get_for_update(self, letter_id: str) -> LetterDB:
        """Load with a row lock (ignored by backends without SELECT ... FOR UPDATE)."""
        letter = (
            self.db.query(LetterDB)
            .filter(LetterDB.id == letter_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if letter is None:
            raise NotFoundError("Letter not found")
        return letter

    def list_by_owner(self, user_id: str) -> List[LetterDB]:
        return (
            self.db.query(LetterDB)
            .filter(LetterDB.user_id == user_id)
            .order_by(LetterDB.created_at.desc())
            .all()
        )

    def list_all(self) -> List[LetterDB]:
        return self.db.query(LetterDB).order_by(LetterDB.created_at.desc()).all()

    def count_by_status(self) -> dict:
        counts = {status.value: 0 for status in LetterStatus}
        rows = self.db.query(LetterDB.status, func.count(LetterDB.id)).group_by(LetterDB.status).all()
        for status, count in rows:
            counts[status.value] = count
        return counts

    def update(self, letter_id: str, **fields) -> LetterDB:
        """Apply field updates. A missing row raises NotFoundError."""
        letter = self.get_or_raise(letter_id)
        for name, value in fields.items():
            setattr(letter, name, value)
        self.db.flush()
        return letter

    def transition(
        self,
        letter_id: str,
        from_states: Iterable[LetterStatus],
        to_state: LetterStatus,
        **fields,
    ) -> bool:
        """
        Move a letter to ``to_state`` only if it is currently in one of
        ``from_states``. Returns True when the row changed.
        """
        values = {getattr(LetterDB, name): value for name, value in fields.items()}
        values[LetterDB.status] = to_state
        updated = (
            self.db.query(LetterDB)
            .filter(LetterDB.id == letter_id, LetterDB.status.in_(list(from_states)))
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def list_stalled(self, older_than: datetime) -> List[LetterDB]:
        """Letters stuck in generating since before ``older_than``."""
        return (
            self.db.query(LetterDB)
            .filter(
                LetterDB.status == LetterStatus.GENERATING,
                LetterDB.generation_started_at < older_than,
            )
            .all()
        )

"""
Letter State Machine

Transition table for the letter lifecycle. Each state records which actor
may move a letter INTO it:
- SYSTEM: background generation and the stalled-generation reaper
- ADMIN: attorney review
- OWNER: the letter's owner (download)

A state may also name a ``reentry_authority``: the actor allowed to apply
a same-state update (an attorney saving notes while a letter is in review).
"""
from typing import Any, Dict, Optional, Tuple

from ...errors import InvalidTransitionError
from ...models.db_models import LetterStatus

SYSTEM = "SYSTEM"
ADMIN = "ADMIN"
OWNER = "OWNER"

STATE_CONFIG: Dict[LetterStatus, Dict[str, Any]] = {
    LetterStatus.REQUESTED: {
        "description": "Letter requested, waiting for AI drafting",
        "allowed_transitions": [LetterStatus.GENERATING],
        "entry_authority": SYSTEM,  # Creation, or reset after failed generation
    },
    LetterStatus.GENERATING: {
        "description": "AI drafting in flight",
        "allowed_transitions": [LetterStatus.REVIEWING, LetterStatus.REQUESTED],
        "entry_authority": SYSTEM,
    },
    LetterStatus.REVIEWING: {
        "description": "Draft awaiting attorney review",
        "allowed_transitions": [LetterStatus.REVIEWING, LetterStatus.COMPLETED],
        "entry_authority": SYSTEM,
        "reentry_authority": ADMIN,
    },
    LetterStatus.COMPLETED: {
        "description": "Approved by attorney, document rendered",
        "allowed_transitions": [LetterStatus.DOWNLOADED],
        "entry_authority": ADMIN,
    },
    LetterStatus.DOWNLOADED: {
        "description": "Fetched by the owner; re-download allowed",
        "allowed_transitions": [LetterStatus.DOWNLOADED],
        "entry_authority": OWNER,
    },
}

# States from which an owner may fetch the rendered document
DOWNLOADABLE_STATES = (LetterStatus.COMPLETED, LetterStatus.DOWNLOADED)


def entry_authority(from_state: LetterStatus, to_state: LetterStatus) -> str:
    """Actor allowed to move a letter from ``from_state`` into ``to_state``."""
    config = STATE_CONFIG[LetterStatus(to_state)]
    if LetterStatus(from_state) == LetterStatus(to_state):
        return config.get("reentry_authority", config["entry_authority"])
    return config["entry_authority"]


def can_transition(
    from_state: LetterStatus, to_state: LetterStatus, actor: Optional[str] = None
) -> Tuple[bool, str]:
    """
    Check if a state transition is allowed.

    Without ``actor`` only the table's edges are checked; with one, the
    actor must also hold the target state's entry authority.

    Returns (allowed, reason)
    """
    from_state, to_state = LetterStatus(from_state), LetterStatus(to_state)
    config = STATE_CONFIG.get(from_state, {})
    if to_state not in config.get("allowed_transitions", []):
        return False, f"Cannot move a letter from {from_state.value} to {to_state.value}"
    if actor is not None:
        required = entry_authority(from_state, to_state)
        if actor != required:
            return False, f"Only {required} may move a letter from {from_state.value} to {to_state.value}"
    return True, "Transition allowed"


def ensure_transition(from_state: LetterStatus, to_state: LetterStatus, actor: Optional[str] = None) -> None:
    allowed, reason = can_transition(from_state, to_state, actor)
    if not allowed:
        raise InvalidTransitionError(reason)

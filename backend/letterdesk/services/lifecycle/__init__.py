"""Letter lifecycle: state machine, engine and background dispatch."""
from .state_machine import (
    ADMIN, OWNER, SYSTEM, STATE_CONFIG, DOWNLOADABLE_STATES, can_transition, ensure_transition, entry_authority,
)
from .engine import LetterLifecycleEngine
from .worker_pool import GenerationWorkerPool

__all__ = [
    "STATE_CONFIG",
    "DOWNLOADABLE_STATES",
    "can_transition",
    "ensure_transition",
    "entry_authority",
    "SYSTEM",
    "ADMIN",
    "OWNER",
    "LetterLifecycleEngine",
    "GenerationWorkerPool",
]

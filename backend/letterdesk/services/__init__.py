"""LetterDesk - Services"""
from .accounts import AccountStore, tier_for_points, referral_code_for
from .letter_repository import LetterRepository
from .content_generation import (
    ContentGenerator, GeneratedContent, build_prompt, parse_generation_response,
)
from .document_renderer import DocumentRenderer, build_letter_html
from .commission import CommissionEngine, PriceQuote
from .payments import PaymentGateway, PaymentEventProcessor
from .lifecycle import LetterLifecycleEngine, GenerationWorkerPool

__all__ = [
    "AccountStore", "tier_for_points", "referral_code_for",
    "LetterRepository",
    "ContentGenerator", "GeneratedContent", "build_prompt", "parse_generation_response",
    "DocumentRenderer", "build_letter_html",
    "CommissionEngine", "PriceQuote",
    "PaymentGateway", "PaymentEventProcessor",
    "LetterLifecycleEngine", "GenerationWorkerPool",
]

"""LetterDesk - AI-drafted legal letters with attorney review."""

__version__ = "1.0.0"

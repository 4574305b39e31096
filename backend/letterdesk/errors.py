"""
LetterDesk - Error Taxonomy

Every domain error carries the HTTP status it maps to. Routers let these
propagate; a single exception handler in main.py turns them into responses.
"""


class LetterDeskError(Exception):
    """Base class for domain errors."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or "Error"


class ConfigurationError(LetterDeskError):
    """Required configuration is missing or malformed."""


class CapacityError(LetterDeskError):
    """No active subscription or letters remaining."""
    status_code = 400


class NotAuthenticatedError(LetterDeskError):
    """Could not validate credentials."""
    status_code = 401


class ForbiddenError(LetterDeskError):
    """Access denied."""
    status_code = 403


class NotFoundError(LetterDeskError):
    """Resource not found."""
    status_code = 404


class NotReadyError(LetterDeskError):
    """The rendered document is not ready yet."""
    status_code = 409


class InvalidTransitionError(LetterDeskError):
    """The requested status change is not allowed."""
    status_code = 409


class PaymentError(LetterDeskError):
    """The payment processor rejected the request."""
    status_code = 502


class RenderError(LetterDeskError):
    """Document rendering failed."""
    status_code = 502


class ServiceUnavailableError(LetterDeskError):
    """An optional integration is not configured."""
    status_code = 503


class GenerationError(LetterDeskError):
    """Content generation failed. Handled inside the background task."""

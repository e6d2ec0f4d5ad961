"""
Domain errors raised by the waitlist repositories and services.

Each error carries the HTTP status it maps to; the handler installed in
``main.py`` turns any of them into ``{"success": false, "error": message}``.
"""
from fastapi import status


class WaitlistError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(WaitlistError):
    """Malformed or missing input."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class PolicyError(WaitlistError):
    """Requester is not allowed to perform the action."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class NotFoundError(WaitlistError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(WaitlistError):
    """Duplicate join, or the event still has open slots."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request conflicts with the current waitlist state"


class PromotionExpiredError(WaitlistError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Promotion expired or invalid"


class PersistenceError(WaitlistError):
    """Underlying storage failure. The driver error is chained and logged, only the short message reaches clients."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

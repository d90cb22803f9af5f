"""
Domain-specific exception hierarchy for the booking engine.

Every failure is classified so callers can tell "fix your request"
(InvalidInputError) from "pick another slot" (BookingConflictError) from
"try again later" (StoreUnavailableError).
"""

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for API/CLI responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(SchedulingError, ValueError):
    """Raised when a request is malformed or references unknown entities."""


class InvalidTransitionError(InvalidInputError):
    """Raised when a booking status change is not allowed."""


class UnknownBookingError(InvalidInputError):
    """Raised when a booking id does not exist in the store."""


class BookingConflictError(SchedulingError):
    """Raised when the requested range is already occupied by a live booking."""


class StoreUnavailableError(SchedulingError):
    """Raised when the backing store fails or times out."""

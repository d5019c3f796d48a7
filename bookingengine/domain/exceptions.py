"""
Domain-specific exception hierarchy for the booking engine.
"""

from typing import List, Sequence


class BookingEngineError(Exception):
    """Base class for all engine-level errors."""


class ConfigMissingError(BookingEngineError):
    """Raised when business rules needed for a computation are not loaded."""


class QuoteValidationError(BookingEngineError):
    """Raised when a quote fails a gate that must pass before pricing."""

    def __init__(self, message: str, errors: Sequence[str] = ()):
        super().__init__(message)
        self.errors: List[str] = list(errors) or [message]


class InvalidQuoteTransitionError(BookingEngineError):
    """Raised when a quote is moved to a status it cannot reach from its current one."""


class OverlappingRulesError(BookingEngineError):
    """Raised when a pricing or duration rule table contains ambiguous entries."""


class SlotConflictError(BookingEngineError):
    """Raised when a slot can no longer be reserved because it overlaps a commitment."""


class RecordStoreError(BookingEngineError):
    """Raised when record store data cannot be loaded or parsed."""

"""
Domain-specific exception hierarchy for the camp slot scheduler.
"""


class CampSlotsError(Exception):
    """Base class for all application-level errors."""


class InvalidConfiguration(CampSlotsError):
    """Raised when camp parameters are malformed or an edit is not allowed."""


class NoSlotsAvailable(CampSlotsError):
    """Raised when every slot of a camp is already booked."""


class AlreadyRegistered(CampSlotsError):
    """Raised when a donor already holds a slot in the camp."""


class NotFound(CampSlotsError):
    """Raised when a referenced camp, registration or user does not exist."""


class PermissionDenied(CampSlotsError):
    """Raised when the caller's role or ownership does not allow an operation."""


class ConcurrentModification(CampSlotsError):
    """Raised when a document changed between read and write."""


class InconsistentState(CampSlotsError):
    """Raised when slot occupancy and registrations disagree."""


class StoreError(CampSlotsError):
    """Raised when documents cannot be read from or written to the store."""


class AuthenticationError(CampSlotsError):
    """Raised when authentication or token handling fails."""

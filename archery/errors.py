"""
Error kinds raised by the scoring and rating engine.

Callers are expected to surface NotFoundError, InvalidTransitionError and
ValidationError as client errors, and NoDataError as an empty result.
"""


class ArcheryError(Exception):
    """Base exception for engine errors"""
    pass


class NotFoundError(ArcheryError):
    """Raised when a referenced user, round, end or shot does not exist"""
    pass


class CapacityExceededError(ArcheryError):
    """Raised when an arrow index falls outside the round's arrows-per-end"""
    pass


class InvalidTransitionError(ArcheryError):
    """Raised when a round lifecycle change is not allowed from its current state"""
    pass


class NoDataError(ArcheryError):
    """Raised when a rating or ranking has no eligible rounds"""
    pass


class ValidationError(ArcheryError):
    """Raised for malformed input (unknown score label, bad filter value)"""
    pass

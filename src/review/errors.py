"""Exceptions raised by the review scheduler."""


class ReviewError(Exception):
    """Base class for review scheduler errors."""
    pass


class InvalidArgumentError(ReviewError, ValueError):
    """Raised when an input is outside its contract (e.g. quality not in 0-5)."""
    pass


class StorageError(ReviewError):
    """Raised when the review database cannot be read or written."""
    pass


class SessionStateError(ReviewError):
    """Raised when a review session operation is called in the wrong state."""
    pass

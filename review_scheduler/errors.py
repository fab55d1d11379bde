"""Exception types raised by the review scheduler."""


class SchedulerError(Exception):
    """Base class for review scheduler errors."""


class PersistenceError(SchedulerError):
    """Raised when the persistence backend fails to read or write review state."""

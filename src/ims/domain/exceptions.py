"""Domain-level exceptions.

All business rule violations are expressed as subclasses of DomainException
so the CLI layer can catch them uniformly and display user-friendly messages.

Capacity shortfalls are deliberately *not* exceptions: they are reported as
``CapacityFailure`` values so a batch can list every short item at once.
"""


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """Malformed input, rejected before any storage access."""


class NotFoundError(DomainException):
    """A referenced resource key, ledger row or reservation does not exist."""


class ConflictError(DomainException):
    """An illegal state transition, or retries were exhausted."""


class ConcurrentModificationError(DomainException):
    """Transient storage conflict. Retried by the reservation manager."""

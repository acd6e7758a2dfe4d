from django.core.exceptions import ValidationError


class LedgerError(Exception):
    """Base class for document lifecycle and ledger failures."""


class NotFound(LedgerError):
    pass


class DocumentNotFound(NotFound):
    """Raised when the referenced document does not exist."""


class NotificationNotFound(NotFound):
    pass


class Forbidden(LedgerError):
    """Raised when the caller lacks a capability for the operation."""


class InvalidInput(LedgerError, ValidationError):
    """Rejected before any write: bad enum, bad amount, bad identifier."""


class InvalidStatus(InvalidInput):
    pass


class InvalidTransition(InvalidInput):
    pass


class InvalidAmount(InvalidInput):
    pass


class InvalidCurrency(InvalidInput):
    pass


class Conflict(LedgerError):
    pass


class IdentifierSpaceExhausted(Conflict):
    """Every identifier retry collided; treat as an entropy/config fault."""


class RateLimited(LedgerError):
    def __init__(self, retry_after, message="Too many requests. Please try again later."):
        super().__init__(message)
        self.retry_after = retry_after
        self.message = message


class ImmutableRecordError(LedgerError):
    """Raised on attempts to change or delete an append-only row."""


def error_message(exc):
    """Human readable text for any ledger failure."""
    if isinstance(exc, ValidationError):
        return "; ".join(exc.messages)
    if isinstance(exc, RateLimited):
        return exc.message
    return str(exc)

"""
Exceptions raised across the booking engine.

Expected business outcomes (conflicts inside a recurring batch, ineligible
refunds) are returned as structured results; these exceptions cover the
collaborator boundary and the single-booking write path.
"""
from typing import List, Optional


class BookingEngineError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DataUnavailableError(BookingEngineError):
    """A read from the store failed; callers must not treat it as 'no data'."""


class StoreWriteError(BookingEngineError):
    """A write to the store failed."""


class BookingInsertError(StoreWriteError):
    """The store rejected or failed a booking insert."""


class BookingNotFoundError(BookingEngineError):
    pass


class BookingConflictError(BookingEngineError):
    """The requested slot overlaps an active booking for the provider."""

    def __init__(self, message: str, conflicts: Optional[List] = None):
        super().__init__(message)
        self.conflicts = conflicts or []


class InvalidStatusTransitionError(BookingEngineError):
    pass


class PaymentProviderError(BookingEngineError):
    """The payment processor failed to execute a refund."""


class ServiceNotFoundError(BookingEngineError):
    pass

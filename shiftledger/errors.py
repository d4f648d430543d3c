"""
Error kinds raised by the versioning and audit engine.

Every error raised inside a transaction aborts that transaction wholesale.
The HTTP layer turns `status_code` into the response; callers use `retryable`
to decide whether to back off and try again.
"""
from typing import List, Optional


class ShiftLedgerError(Exception):
    """Base class for all engine errors."""
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundError(ShiftLedgerError):
    """Target row is absent, or is not the current version."""
    status_code = 404


class ConflictError(ShiftLedgerError):
    """A concurrent retirement of the same current row won the race."""
    status_code = 409
    retryable = True


class ValidationFailure(ShiftLedgerError):
    """Malformed field updates, unknown entity types, or a bad actor contract."""
    status_code = 422


class StoreFailure(ShiftLedgerError):
    """
    Underlying transaction or connection error.

    The driver exception is chained as __cause__.
    """
    status_code = 503
    retryable = True


class ChainInconsistencyError(ShiftLedgerError):
    """
    A version chain violates the single-head invariant.

    Raised instead of trusting a non-current row as the lineage head.
    """
    status_code = 409

    def __init__(self, message: str, visited_ids: Optional[List[str]] = None):
        self.visited_ids = visited_ids or []
        super().__init__(message)

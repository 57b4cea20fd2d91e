from enum import Enum


class InvalidSnapshotError(ValueError):
    """Raised when a quote matrix has an empty venue map or a bad price."""


class QuoteSourceError(RuntimeError):
    """Raised when a quote source cannot produce any snapshot at all."""


class LifecycleError(Enum):
    """
    Rejected lifecycle transitions. These are returned, never raised,
    so an autonomous loop can keep going after a refusal.
    """
    INVALID_STATE = "invalid_state"
    UNKNOWN_OPPORTUNITY = "unknown_opportunity"

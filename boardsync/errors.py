"""
Exception taxonomy for board synchronization.

Reconciliation errors are raised before anything touches the cache or the
network. Validation and network errors describe one failed row write and are
normally collected into a DispatchResult rather than propagated.
"""


class BoardSyncError(Exception):
    """Base class for all boardsync errors."""
    pass


class ConfigError(BoardSyncError):
    """Raised when configuration is invalid or incomplete."""
    pass


class ReconcileError(BoardSyncError):
    """Raised when a drop event does not describe a valid move."""
    pass


class CacheError(BoardSyncError):
    """Raised when a batch cannot be applied to or restored into the cache."""
    pass


class DragInProgressError(BoardSyncError):
    """Raised when a gesture starts while a previous one has not finished."""
    pass


class MutationError(BoardSyncError):
    """A single row write failed."""

    kind = "unknown"

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(MutationError):
    """The backend rejected the write (bad column id, constraint violation). Not retriable."""

    kind = "validation"


class NetworkError(MutationError):
    """Transport failure, timeout or server error. Retriable in principle."""

    kind = "network"


class ConsistencyError(BoardSyncError):
    """Local and server ordering disagree after a reported success."""

    def __init__(self, message: str, card_ids=()):
        super().__init__(message)
        self.card_ids = list(card_ids)

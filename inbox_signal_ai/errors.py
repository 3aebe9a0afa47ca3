"""Error taxonomy for the sync pipeline."""


class InboxSignalError(Exception):
    """Base class for pipeline errors."""


class ListingError(InboxSignalError):
    """Listing failed; the run cannot start. Carries a transport-level code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class FetchError(InboxSignalError):
    """A single message could not be fetched (not found or provider error)."""


class EnrichmentError(InboxSignalError):
    """Transient failure of the analysis call; retryable."""


class ValidationFailure(EnrichmentError):
    """Analysis returned a result that breaks the acceptance rules."""


class PersistError(InboxSignalError):
    """Result store write failed. Never fatal to a run."""


class OperationCancelled(InboxSignalError):
    """The run's cancellation event fired while waiting."""


class StreamClosedError(InboxSignalError):
    """Write attempted on a result stream that was already closed."""

"""Coordination-layer exceptions. Lease loss is not an error: release/extend return False."""


class CoordinationError(Exception):
    """Base for all coordination-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StoreUnavailableError(CoordinationError):
    """Raised when the backing store cannot be reached, times out, or rejects a script."""


class SerializationError(CoordinationError):
    """Raised when a cached value cannot be encoded or decoded."""


class AcquisitionTimeoutError(CoordinationError, TimeoutError):
    """Raised when every acquire attempt found the resource busy. Distinct from store outage."""

    def __init__(self, message: str, resource: str, attempts: int) -> None:
        super().__init__(message)
        self.resource = resource
        self.attempts = attempts


class LockAcquisitionTimeoutError(AcquisitionTimeoutError):
    """Lock still held by another token after the retry budget was spent."""


class SemaphoreAcquisitionTimeoutError(AcquisitionTimeoutError):
    """No semaphore permit became free within the retry budget."""

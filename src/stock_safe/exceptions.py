"""
Exception hierarchy for stock_safe.

Every failure a decrement can surface is a subclass of `StockSafeError`.
Catch the base class to handle any library failure, or a specific subclass
when the reaction differs (e.g. only `VersionConflict` is worth retrying).
"""

from __future__ import annotations


class StockSafeError(Exception):
    """
    Base exception for all stock_safe errors.

    Example
    -------
    >>> try:
    ...     decrementer.decrement("ABC", 1)
    ... except StockSafeError as exc:
    ...     log_failure(exc.code)
    """

    #: Stable error code for programmatic handling (e.g. HTTP mapping).
    code: str = "stock_safe_error"

    def __init__(self, message: str | None = None) -> None:
        if message is None:
            message = "An unspecified stock_safe error occurred."
        super().__init__(message)


class ResourceNotFound(StockSafeError):
    """Raised when the store holds no record for the resource id."""

    code: str = "not_found"

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(f"Resource '{resource_id}' does not exist")


class InsufficientStock(StockSafeError):
    """
    Raised when the stored quantity is below the requested amount.

    This is a business-rule failure. Retrying cannot help until the stock
    changes, so the retry coordinator never retries it.
    """

    code: str = "insufficient_stock"

    def __init__(self, resource_id: str, requested: int, available: int) -> None:
        self.resource_id = resource_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for '{resource_id}': "
            f"requested={requested}, available={available}"
        )


class VersionConflict(StockSafeError):
    """
    Raised when an optimistic write lost a race.

    Another writer committed between our read and our conditional write, so
    the stored version no longer matches. Nothing was written; re-reading and
    trying again is safe.
    """

    code: str = "version_conflict"

    def __init__(self, resource_id: str, expected_version: int) -> None:
        self.resource_id = resource_id
        self.expected_version = expected_version
        super().__init__(
            f"Version conflict on '{resource_id}': "
            f"version {expected_version} is no longer current"
        )


class RetryExhausted(StockSafeError):
    """Raised when every attempt allowed by the retry budget ended in a conflict."""

    code: str = "retry_exhausted"

    def __init__(self, resource_id: str, attempts: int) -> None:
        self.resource_id = resource_id
        self.attempts = attempts
        super().__init__(
            f"Gave up decrementing '{resource_id}' after {attempts} conflicting attempts"
        )


class StorageFailure(StockSafeError):
    """
    Raised when the underlying persistence layer fails.

    When raised inside a transaction the transaction has been rolled back, so
    no lock outlives the failure and no partial write is visible.
    """

    code: str = "storage_failure"


class LockAcquireTimeout(StockSafeError):
    """
    Raised when a lock cannot be acquired within the specified timeout.

    Applies both to named locks (`stock_safe.lock`, used by the mutex
    strategy) and to row locks waited on by the pessimistic strategy.

    Common causes
    -------------
    - A concurrent request is decrementing the same resource
    - The timeout value is too low for the lock-hold duration
    - A long-running transaction is holding the row

    Example
    -------
    >>> try:
    ...     PessimisticDecrementer(store, timeout=0.5).decrement("ABC", 1)
    ... except LockAcquireTimeout:
    ...     retry_later()
    """

    code: str = "lock_acquire_timeout"

    def __init__(self, key: str, timeout: float | None) -> None:
        self.key = key
        self.timeout = timeout
        super().__init__(
            f"Failed to acquire lock for key='{key}' within timeout={timeout}s"
        )

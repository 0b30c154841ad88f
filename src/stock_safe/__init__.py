import logging

from .api import lock
from .decrementers import MutexDecrementer, OptimisticDecrementer, PessimisticDecrementer
from .exceptions import (
    InsufficientStock,
    LockAcquireTimeout,
    ResourceNotFound,
    RetryExhausted,
    StockSafeError,
    StorageFailure,
    VersionConflict,
)
from .retry import (
    RetryingDecrementer,
    decrement_with_retry,
    exponential_backoff,
    fixed_backoff,
    retry_on_conflict,
)
from .stores.memory import MemoryResourceStore
from .types import DecrementResult, Resource

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "lock",
    "MutexDecrementer",
    "PessimisticDecrementer",
    "OptimisticDecrementer",
    "RetryingDecrementer",
    "decrement_with_retry",
    "retry_on_conflict",
    "fixed_backoff",
    "exponential_backoff",
    "MemoryResourceStore",
    "Resource",
    "DecrementResult",
    "StockSafeError",
    "ResourceNotFound",
    "InsufficientStock",
    "VersionConflict",
    "RetryExhausted",
    "StorageFailure",
    "LockAcquireTimeout",
]

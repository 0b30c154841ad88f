"""
Decrement strategies.

All three share one contract: `decrement(resource_id, amount)` either
commits ``quantity - amount`` and returns a `DecrementResult`, or raises and
leaves the stored quantity untouched. They differ in how they keep two
concurrent callers from both acting on the same read:

- `MutexDecrementer`: a named lock around read-modify-write (one process).
- `PessimisticDecrementer`: a storage row lock held for a transaction.
- `OptimisticDecrementer`: a version-guarded write; losers get `VersionConflict`.
"""

from __future__ import annotations

import logging
from typing import Callable

from .api import DEFAULT_TIMEOUT, LockBackend, lock
from .exceptions import InsufficientStock, VersionConflict
from .types import DecrementResult, Resource, ResourceStore

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")


def _ensure_available(current: Resource, amount: int) -> None:
    if current.quantity < amount:
        raise InsufficientStock(current.id, amount, current.quantity)


class MutexDecrementer:
    """
    Serializes decrements behind a named lock.

    Parameters
    ----------
    store : ResourceStore
    backend : LockBackend | None
        Named-lock backend. Defaults to the process-local backend, which only
        serializes threads of this process.
    key : str | Callable[[str], str]
        Lock key per resource: a format string using ``{resource_id}`` or a
        callable receiving the id. A constant string gives one global lock.
    timeout : float | None
        Seconds to wait for the lock; see `stock_safe.lock`.
    """

    def __init__(
        self,
        store: ResourceStore,
        backend: LockBackend | None = None,
        key: str | Callable[[str], str] = "stock:{resource_id}",
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self.store = store
        self.backend = backend
        self.key = key
        self.timeout = timeout

    def lock_key(self, resource_id: str) -> str:
        if callable(self.key):
            return self.key(resource_id)
        return self.key.format(resource_id=resource_id)

    def decrement(self, resource_id: str, amount: int) -> DecrementResult:
        _check_amount(amount)

        with lock(self.lock_key(resource_id), timeout=self.timeout, backend=self.backend):
            current = self.store.get(resource_id)
            _ensure_available(current, amount)
            self.store.save(resource_id, current.quantity - amount)

        logger.debug("mutex: %s %d -> %d", resource_id, current.quantity, current.quantity - amount)
        return DecrementResult(resource_id, current.quantity - amount, current.version + 1)


class PessimisticDecrementer:
    """
    Serializes decrements with a storage-level exclusive row lock.

    The lock is taken by `get_for_update` and held until the transaction ends,
    so every process sharing the store queues behind it. Commit or rollback
    releases it on every exit path.

    `timeout` bounds the wait for the row lock; when exceeded the call raises
    `LockAcquireTimeout` and nothing is written.
    """

    def __init__(self, store: ResourceStore, timeout: float | None = None) -> None:
        self.store = store
        self.timeout = timeout

    def decrement(self, resource_id: str, amount: int) -> DecrementResult:
        _check_amount(amount)

        with self.store.transaction(timeout=self.timeout):
            current = self.store.get_for_update(resource_id)
            _ensure_available(current, amount)
            self.store.save(resource_id, current.quantity - amount)

        logger.debug("pessimistic: %s %d -> %d", resource_id, current.quantity, current.quantity - amount)
        return DecrementResult(resource_id, current.quantity - amount, current.version + 1)


class OptimisticDecrementer:
    """
    Decrements without holding any lock across the read and the write.

    The write only lands if the version read is still current. Otherwise
    `VersionConflict` is raised and the caller decides whether to retry (see
    `stock_safe.retry`).
    """

    def __init__(self, store: ResourceStore) -> None:
        self.store = store

    def decrement(self, resource_id: str, amount: int) -> DecrementResult:
        _check_amount(amount)

        current = self.store.get(resource_id)
        _ensure_available(current, amount)

        if not self.store.compare_and_swap(resource_id, current.version, current.quantity - amount):
            logger.debug("optimistic: conflict on %s at version %d", resource_id, current.version)
            raise VersionConflict(resource_id, current.version)

        logger.debug("optimistic: %s %d -> %d", resource_id, current.quantity, current.quantity - amount)
        return DecrementResult(resource_id, current.quantity - amount, current.version + 1)

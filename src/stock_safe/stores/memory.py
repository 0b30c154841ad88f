from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from ..exceptions import LockAcquireTimeout, ResourceNotFound, StorageFailure
from ..types import Resource

logger = logging.getLogger(__name__)


@dataclass
class _Record:
    quantity: int
    version: int = 0
    row_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


@dataclass
class _Transaction:
    timeout: float | None
    locked: list[str] = field(default_factory=list)
    # resource id -> (quantity, version) to publish on commit
    pending: dict[str, tuple[int, int]] = field(default_factory=dict)


class MemoryResourceStore:
    """
    Thread-safe in-process resource store.

    It behaves like a database table with row-level locking:

    - `get` never blocks and only sees committed state.
    - `get_for_update` takes the record's row lock for the rest of the
      enclosing `transaction()`; other lockers and writers wait.
    - Writes inside a transaction are buffered and published atomically on
      commit; an exception discards them (rollback). Row locks are released
      on both paths.
    - Writes outside a transaction commit immediately, after waiting for any
      transaction that holds the row.

    Transactions are tracked per thread, so each worker thread behaves like
    a separate database connection.
    """

    def __init__(self) -> None:
        self._records: dict[str, _Record] = {}
        # Guards _records and makes every publish atomic for readers.
        self._guard = threading.Lock()
        self._local = threading.local()

    def create(self, resource_id: str, quantity: int) -> Resource:
        if quantity < 0:
            raise ValueError(f"Initial quantity must be non-negative, got {quantity}")

        with self._guard:
            if resource_id in self._records:
                raise ValueError(f"Resource '{resource_id}' already exists")
            self._records[resource_id] = _Record(quantity=quantity)

        return Resource(resource_id, quantity, 0)

    def get(self, resource_id: str) -> Resource:
        tx = self._current()
        if tx is not None and resource_id in tx.pending:
            quantity, version = tx.pending[resource_id]
            return Resource(resource_id, quantity, version)

        with self._guard:
            record = self._lookup(resource_id)
            return Resource(resource_id, record.quantity, record.version)

    def get_for_update(self, resource_id: str) -> Resource:
        tx = self._current()
        if tx is None:
            raise StorageFailure("get_for_update() must be called inside transaction()")

        self._lock_row(tx, resource_id)
        return self.get(resource_id)

    def compare_and_swap(
        self, resource_id: str, expected_version: int, new_quantity: int
    ) -> bool:
        return self._write(resource_id, new_quantity, expected_version)

    def save(self, resource_id: str, quantity: int) -> None:
        self._write(resource_id, quantity)

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[None]:
        """
        Scoped transaction; commit on normal exit, rollback on exception.

        `timeout` bounds every row-lock wait inside the scope. Nested calls
        join the outer transaction; a nested timeout applies until the nested
        scope exits, and ``None`` keeps the enclosing bound.
        """
        outer = self._current()
        if outer is not None:
            previous = outer.timeout
            if timeout is not None:
                outer.timeout = timeout
            try:
                yield
            finally:
                outer.timeout = previous
            return

        tx = _Transaction(timeout=timeout)
        self._local.transaction = tx
        try:
            yield
            self._commit(tx)
        except BaseException:
            logger.debug("Rolling back transaction touching %s", tx.locked)
            raise
        finally:
            self._local.transaction = None
            for resource_id in reversed(tx.locked):
                self._records[resource_id].row_lock.release()

    def _current(self) -> _Transaction | None:
        return getattr(self._local, "transaction", None)

    def _lookup(self, resource_id: str) -> _Record:
        try:
            return self._records[resource_id]
        except KeyError:
            raise ResourceNotFound(resource_id) from None

    def _lock_row(self, tx: _Transaction, resource_id: str) -> None:
        with self._guard:
            record = self._lookup(resource_id)
        if resource_id in tx.locked:
            return

        wait = -1 if tx.timeout is None else max(0.0, tx.timeout)
        if not record.row_lock.acquire(timeout=wait):
            raise LockAcquireTimeout(f"row:{resource_id}", tx.timeout)
        tx.locked.append(resource_id)

    def _write(
        self, resource_id: str, quantity: int, expected_version: int | None = None
    ) -> bool:
        if quantity < 0:
            raise StorageFailure(
                f"Refusing to store negative quantity {quantity} for '{resource_id}'"
            )

        tx = self._current()
        if tx is not None:
            self._lock_row(tx, resource_id)
            current = self.get(resource_id)
            if expected_version is not None and current.version != expected_version:
                return False
            tx.pending[resource_id] = (quantity, current.version + 1)
            return True

        with self._guard:
            record = self._lookup(resource_id)

        with record.row_lock:
            with self._guard:
                if expected_version is not None and record.version != expected_version:
                    return False
                record.quantity = quantity
                record.version += 1
        return True

    def _commit(self, tx: _Transaction) -> None:
        with self._guard:
            for resource_id, (quantity, version) in tx.pending.items():
                record = self._records[resource_id]
                record.quantity = quantity
                record.version = version

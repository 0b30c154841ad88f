from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, connections, transaction
from django.db.models import F

from ..exceptions import LockAcquireTimeout, ResourceNotFound, StockSafeError, StorageFailure
from ..models import Stock
from ..types import Resource

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE raised when lock_timeout expires.
LOCK_NOT_AVAILABLE = "55P03"


def _sqlstate(exc: DatabaseError) -> str | None:
    # psycopg 3 exposes .sqlstate, psycopg2 exposes .pgcode.
    cause = exc.__cause__
    return getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)


def _translate(exc: DatabaseError, key: str, timeout: float | None) -> StockSafeError:
    if _sqlstate(exc) == LOCK_NOT_AVAILABLE:
        return LockAcquireTimeout(key, timeout)
    return StorageFailure(f"Database error on '{key}': {exc}")


class DjangoResourceStore:
    """
    Resource store over the `stock_safe.Stock` model.

    Row locks come from ``SELECT ... FOR UPDATE``, so the pessimistic strategy
    is only as strong as the database's row locking: use PostgreSQL (SQLite
    silently ignores FOR UPDATE). The version guard is a single
    ``UPDATE ... WHERE version = %s`` and works on every backend.

    Database errors are translated into `StorageFailure`, or
    `LockAcquireTimeout` when PostgreSQL's lock_timeout fires.
    """

    def __init__(self, using: str = DEFAULT_DB_ALIAS) -> None:
        self.using = using
        self._local = threading.local()

    def _stock(self):
        return Stock.objects.using(self.using)

    def create(self, resource_id: str, quantity: int) -> Resource:
        if quantity < 0:
            raise ValueError(f"Initial quantity must be non-negative, got {quantity}")

        try:
            with transaction.atomic(using=self.using):
                self._stock().create(sku=resource_id, quantity=quantity, version=0)
        except IntegrityError as exc:
            raise ValueError(f"Resource '{resource_id}' already exists") from exc
        except DatabaseError as exc:
            raise _translate(exc, resource_id, None) from exc

        return Resource(resource_id, quantity, 0)

    def get(self, resource_id: str) -> Resource:
        try:
            row = (
                self._stock()
                .filter(sku=resource_id)
                .values_list("quantity", "version")
                .first()
            )
        except DatabaseError as exc:
            raise _translate(exc, resource_id, None) from exc

        if row is None:
            raise ResourceNotFound(resource_id)
        return Resource(resource_id, *row)

    def get_for_update(self, resource_id: str) -> Resource:
        if not connections[self.using].in_atomic_block:
            raise StorageFailure("get_for_update() must be called inside transaction()")

        timeout = getattr(self._local, "timeout", None)
        try:
            row = (
                self._stock()
                .select_for_update()
                .filter(sku=resource_id)
                .values_list("quantity", "version")
                .first()
            )
        except DatabaseError as exc:
            raise _translate(exc, f"row:{resource_id}", timeout) from exc

        if row is None:
            raise ResourceNotFound(resource_id)
        return Resource(resource_id, *row)

    def compare_and_swap(
        self, resource_id: str, expected_version: int, new_quantity: int
    ) -> bool:
        try:
            updated = (
                self._stock()
                .filter(sku=resource_id, version=expected_version)
                .update(quantity=new_quantity, version=F("version") + 1)
            )
            if updated:
                return True
            if not self._stock().filter(sku=resource_id).exists():
                raise ResourceNotFound(resource_id)
        except DatabaseError as exc:
            raise _translate(exc, resource_id, None) from exc

        return False

    def save(self, resource_id: str, quantity: int) -> None:
        try:
            updated = (
                self._stock()
                .filter(sku=resource_id)
                .update(quantity=quantity, version=F("version") + 1)
            )
        except DatabaseError as exc:
            raise _translate(exc, resource_id, None) from exc

        if not updated:
            raise ResourceNotFound(resource_id)

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[None]:
        """
        `transaction.atomic` with an optional bound on row-lock waits.

        Rollback on any exception releases the row locks taken inside, so a
        failed decrement never leaves a SKU locked.

        Nested calls run in a savepoint. A nested `timeout` applies until the
        nested scope exits, then the enclosing bound is restored; ``None``
        keeps the enclosing bound.
        """
        connection = connections[self.using]
        outermost = not connection.in_atomic_block
        previous = getattr(self._local, "timeout", None)

        try:
            with transaction.atomic(using=self.using):
                replaced = None
                if outermost or timeout is not None:
                    self._local.timeout = timeout
                if timeout is not None:
                    replaced = self._set_lock_timeout(connection, timeout)
                yield
                # Rolling back the savepoint undoes the SET by itself.
                if not outermost and replaced is not None:
                    self._apply_lock_timeout(connection, replaced)
        except DatabaseError as exc:
            raise _translate(exc, "transaction", timeout) from exc
        finally:
            self._local.timeout = previous

    def _set_lock_timeout(self, connection, timeout: float) -> str | None:
        """Bound lock waits for the rest of the transaction; return the replaced value."""
        if connection.vendor != "postgresql":
            logger.debug("Lock timeout not supported on %s; waiting without bound", connection.vendor)
            return None

        with connection.cursor() as cursor:
            cursor.execute("SELECT current_setting('lock_timeout');")
            replaced = cursor.fetchone()[0]

        # lock_timeout=0 disables the limit, so never send less than 1ms.
        millis = max(1, int(timeout * 1000))
        self._apply_lock_timeout(connection, f"{millis}ms")
        return replaced

    def _apply_lock_timeout(self, connection, value: str) -> None:
        with connection.cursor() as cursor:
            # is_local=true scopes the setting to the current transaction.
            cursor.execute("SELECT set_config('lock_timeout', %s, true);", [value])

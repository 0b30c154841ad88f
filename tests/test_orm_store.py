"""
DjangoResourceStore tests that need no database server.

Without DATABASE_URL these run on in-memory SQLite, which is enough to
exercise the ORM paths (lookups, version-guarded updates, constraint and
error translation). Row-lock behavior lives in test_postgres_concurrency.py.
Everything runs on the main thread: each thread would get its own empty
in-memory database.
"""

import uuid

import pytest
from django.db import DatabaseError

from stock_safe import (
    InsufficientStock,
    LockAcquireTimeout,
    MutexDecrementer,
    OptimisticDecrementer,
    PessimisticDecrementer,
    ResourceNotFound,
    RetryingDecrementer,
    StorageFailure,
    VersionConflict,
)
from stock_safe.backends.local import LocalLockBackend
from stock_safe.types import DecrementResult, Resource

pytestmark = pytest.mark.usefixtures("django_vendor")


@pytest.fixture
def store(django_vendor):
    from stock_safe.stores.orm import DjangoResourceStore

    return DjangoResourceStore()


@pytest.fixture
def sku(store):
    """A fresh SKU with 10 units, removed afterwards."""
    from stock_safe.models import Stock

    value = f"orm-{uuid.uuid4().hex[:12]}"
    store.create(value, 10)
    yield value
    Stock.objects.filter(sku=value).delete()


def test_create_and_get(store, sku):
    assert store.get(sku) == Resource(sku, 10, 0)


def test_create_rejects_duplicates_and_negative_quantity(store, sku):
    with pytest.raises(ValueError):
        store.create(sku, 5)
    with pytest.raises(ValueError):
        store.create(f"{sku}-neg", -1)

    assert store.get(sku) == Resource(sku, 10, 0)


def test_unknown_sku_is_not_found(store):
    with pytest.raises(ResourceNotFound):
        store.get("nope")
    with pytest.raises(ResourceNotFound):
        store.save("nope", 1)
    with pytest.raises(ResourceNotFound):
        store.compare_and_swap("nope", 0, 1)
    with pytest.raises(ResourceNotFound):
        with store.transaction():
            store.get_for_update("nope")


def test_compare_and_swap_checks_version(store, sku):
    assert store.compare_and_swap(sku, 0, 7) is True
    assert store.compare_and_swap(sku, 0, 3) is False

    assert store.get(sku) == Resource(sku, 7, 1)


def test_save_bumps_version(store, sku):
    store.save(sku, 4)
    store.save(sku, 3)

    assert store.get(sku) == Resource(sku, 3, 2)


def test_negative_quantity_is_a_storage_failure(store, sku):
    with pytest.raises(StorageFailure) as info:
        store.save(sku, -1)

    assert isinstance(info.value.__cause__, DatabaseError)
    assert store.get(sku) == Resource(sku, 10, 0)


def test_get_for_update_requires_transaction(store, sku):
    with pytest.raises(StorageFailure):
        store.get_for_update(sku)


def test_transaction_rolls_back_on_error(store, sku):
    with pytest.raises(RuntimeError):
        with store.transaction(timeout=1.0):
            store.get_for_update(sku)
            store.save(sku, 0)
            raise RuntimeError("boom")

    assert store.get(sku) == Resource(sku, 10, 0)


def test_nested_transaction_commits_with_outer(store, sku):
    with store.transaction():
        current = store.get_for_update(sku)
        with store.transaction(timeout=0.5):
            store.save(sku, current.quantity - 1)

    assert store.get(sku) == Resource(sku, 9, 1)


# One decrement per strategy

@pytest.mark.parametrize(
    "make",
    [
        lambda s: MutexDecrementer(s, backend=LocalLockBackend(), timeout=1.0),
        lambda s: PessimisticDecrementer(s, timeout=1.0),
        lambda s: OptimisticDecrementer(s),
        lambda s: RetryingDecrementer(OptimisticDecrementer(s), max_attempts=3),
    ],
    ids=["mutex", "pessimistic", "optimistic", "optimistic+retry"],
)
def test_strategy_decrements_and_refuses_overdraw(store, sku, make):
    decrementer = make(store)

    assert decrementer.decrement(sku, 4) == DecrementResult(sku, 6, 1)

    with pytest.raises(InsufficientStock):
        decrementer.decrement(sku, 7)
    with pytest.raises(ResourceNotFound):
        decrementer.decrement("nope", 1)

    assert store.get(sku) == Resource(sku, 6, 1)


def test_optimistic_stale_version_conflicts(store, sku):
    stale = store.get(sku)
    store.save(sku, 9)

    class StaleStore:
        def get(self, resource_id):
            return stale

        def compare_and_swap(self, resource_id, expected_version, new_quantity):
            return store.compare_and_swap(resource_id, expected_version, new_quantity)

    with pytest.raises(VersionConflict):
        OptimisticDecrementer(StaleStore()).decrement(sku, 1)

    assert store.get(sku) == Resource(sku, 9, 1)


# Driver error translation

class DriverError(Exception):
    def __init__(self, sqlstate=None, pgcode=None):
        super().__init__("driver error")
        if sqlstate is not None:
            self.sqlstate = sqlstate
        if pgcode is not None:
            self.pgcode = pgcode


def _wrapped(cause):
    exc = DatabaseError("wrapped")
    exc.__cause__ = cause
    return exc


@pytest.mark.parametrize("cause", [DriverError(sqlstate="55P03"), DriverError(pgcode="55P03")])
def test_lock_not_available_becomes_lock_timeout(cause):
    from stock_safe.stores.orm import _translate

    translated = _translate(_wrapped(cause), "row:ABC", 0.2)

    assert isinstance(translated, LockAcquireTimeout)
    assert (translated.key, translated.timeout) == ("row:ABC", 0.2)


@pytest.mark.parametrize("cause", [DriverError(sqlstate="23505"), DriverError(), None])
def test_other_database_errors_become_storage_failure(cause):
    from stock_safe.stores.orm import _sqlstate, _translate

    exc = _wrapped(cause)
    translated = _translate(exc, "ABC", None)

    assert isinstance(translated, StorageFailure)
    assert _sqlstate(exc) == getattr(cause, "sqlstate", None)

from __future__ import annotations

from dataclasses import dataclass
from typing import ContextManager, Protocol


@dataclass(frozen=True)
class Resource:
    """
    Point-in-time snapshot of a stored resource.

    `version` is incremented by the store on every successful write and is the
    guard used by `ResourceStore.compare_and_swap`.
    """

    id: str
    quantity: int
    version: int = 0


@dataclass(frozen=True)
class DecrementResult:
    """Committed state of a resource right after a successful decrement."""

    resource_id: str
    quantity: int
    version: int


class ResourceStore(Protocol):
    """
    Persistence primitives the decrement strategies are built on.

    Implementations: `stock_safe.stores.memory.MemoryResourceStore` and
    `stock_safe.stores.orm.DjangoResourceStore`.
    """

    def create(self, resource_id: str, quantity: int) -> Resource: ...

    def get(self, resource_id: str) -> Resource: ...

    def get_for_update(self, resource_id: str) -> Resource: ...

    def compare_and_swap(
        self, resource_id: str, expected_version: int, new_quantity: int
    ) -> bool: ...

    def save(self, resource_id: str, quantity: int) -> None: ...

    def transaction(self, timeout: float | None = None) -> ContextManager[None]: ...


class Decrementer(Protocol):
    """Anything that can decrement a resource: the three strategies and the retry wrapper."""

    def decrement(self, resource_id: str, amount: int) -> DecrementResult: ...

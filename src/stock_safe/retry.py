from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Protocol, TypeVar

from .conf import get_setting
from .exceptions import RetryExhausted, VersionConflict
from .types import DecrementResult, Decrementer

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class Backoff(Protocol):
    """
    Returns how long to sleep after the given failed attempt (1-based).
    """
    def __call__(self, attempt: int) -> float: ...


def fixed_backoff(delay: float) -> Backoff:
    """Always wait `delay` seconds."""
    def backoff(attempt: int) -> float:
        return delay

    return backoff


def exponential_backoff(
    base: float | None = None,
    cap: float | None = None,
    jitter: bool = True,
) -> Backoff:
    """
    Exponential backoff ``min(cap, base * 2 ** (attempt - 1))``.

    With `jitter` (the default) the delay is drawn uniformly from
    ``[0, that value]`` ("full jitter"), which spreads out callers that
    conflicted at the same moment instead of waking them together.
    Omitted bounds are read from RETRY_BASE_DELAY and RETRY_MAX_DELAY on
    every call, so settings loaded after construction still apply.
    """
    def backoff(attempt: int) -> float:
        low = get_setting("RETRY_BASE_DELAY") if base is None else base
        high = get_setting("RETRY_MAX_DELAY") if cap is None else cap
        delay = min(high, low * 2 ** (attempt - 1))
        return random.uniform(0, delay) if jitter else delay

    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to try and how long to wait in between.

    Only `VersionConflict` is ever retried. Every other error, including
    `InsufficientStock` and `ResourceNotFound`, propagates on first sight:
    retrying cannot turn a permanent failure into a success.
    """
    max_attempts: int = field(default_factory=lambda: get_setting("RETRY_MAX_ATTEMPTS"))
    backoff: Backoff = field(default_factory=exponential_backoff)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def run(self, fn: Callable[..., Any], resource_id: str, *args: Any, **kwargs: Any) -> Any:
        last_conflict: VersionConflict | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except VersionConflict as exc:
                last_conflict = exc
                if attempt == self.max_attempts:
                    break
                delay = self.backoff(attempt)
                logger.warning(
                    "Version conflict on %s, attempt %d/%d; retrying in %.3fs",
                    resource_id, attempt, self.max_attempts, delay,
                )
                self.sleep(delay)

        logger.error(
            "Version conflict on %s unresolved after %d attempts",
            resource_id, self.max_attempts,
        )
        raise RetryExhausted(resource_id, self.max_attempts) from last_conflict


def _policy(
    max_attempts: int | None,
    backoff: Backoff | None,
    sleep: Callable[[float], None] | None,
) -> RetryPolicy:
    kwargs: dict[str, Any] = {}
    if max_attempts is not None:
        kwargs["max_attempts"] = max_attempts
    if backoff is not None:
        kwargs["backoff"] = backoff
    if sleep is not None:
        kwargs["sleep"] = sleep
    return RetryPolicy(**kwargs)


def decrement_with_retry(
    strategy: Decrementer,
    resource_id: str,
    amount: int,
    max_attempts: int | None = None,
    backoff: Backoff | None = None,
    sleep: Callable[[float], None] | None = None,
) -> DecrementResult:
    """
    Call ``strategy.decrement`` until it stops raising `VersionConflict`.

    Raises
    ------
    RetryExhausted
        After `max_attempts` conflicts. The last conflict is chained as
        ``__cause__``.
    StockSafeError
        Any non-conflict failure of the strategy, unchanged.

    Example
    -------
    >>> decrement_with_retry(OptimisticDecrementer(store), "ABC", 1, max_attempts=5)
    """
    policy = _policy(max_attempts, backoff, sleep)
    return policy.run(strategy.decrement, resource_id, resource_id, amount)


class RetryingDecrementer:
    """
    Wraps a conflict-prone strategy so it can be used wherever a plain
    `Decrementer` is expected. Omitted parameters follow the settings in
    effect at each call.

    >>> buy = RetryingDecrementer(OptimisticDecrementer(store), max_attempts=20)
    >>> buy.decrement("ABC", 1)
    """

    def __init__(
        self,
        strategy: Decrementer,
        max_attempts: int | None = None,
        backoff: Backoff | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.strategy = strategy
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep

    def decrement(self, resource_id: str, amount: int) -> DecrementResult:
        policy = _policy(self.max_attempts, self.backoff, self.sleep)
        return policy.run(self.strategy.decrement, resource_id, resource_id, amount)


def retry_on_conflict(
    *,
    max_attempts: int | None = None,
    backoff: Backoff | None = None,
    resource: Callable[..., str] | None = None,
) -> Callable[[F], F]:
    """
    Decorator form of the retry coordinator.

    `resource` extracts the resource id from the call's arguments (used in
    logs and in `RetryExhausted`); by default the first positional argument.
    Omitted parameters are resolved per call, not at decoration time.

    @retry_on_conflict(max_attempts=5)
    def buy(sku, amount):
        return OptimisticDecrementer(store).decrement(sku, amount)
    """
    def decorator(fn: F) -> F:
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if resource is not None:
                resource_id = resource(*args, **kwargs)
            else:
                resource_id = str(args[0]) if args else fn.__name__
            policy = _policy(max_attempts, backoff, None)
            return policy.run(fn, resource_id, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator

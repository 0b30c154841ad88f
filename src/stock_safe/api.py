from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from .backends.local import LocalLockBackend
from .conf import get_setting
from .exceptions import LockAcquireTimeout

logger = logging.getLogger(__name__)


class LockBackend(Protocol):
    """
    Minimal interface of a named-lock backend.

    `LocalLockBackend` serializes threads of one process;
    `PostgresAdvisoryLockBackend` serializes every process connected to the
    same PostgreSQL cluster.
    """
    def acquire(self, key: str, timeout: float | None) -> bool: ...
    def release(self, key: str) -> None: ...


#: Marker meaning "use the LOCK_TIMEOUT setting".
DEFAULT_TIMEOUT: Any = object()

_default_backend: LockBackend = LocalLockBackend()


@contextmanager
def lock(
    key: str,
    timeout: float | None = DEFAULT_TIMEOUT,
    backend: LockBackend | None = None,
) -> Iterator[None]:
    """
    Hold the named lock `key` for the duration of the block.

    Parameters
    ----------
    key : str
        Lock identifier, typically derived from the resource,
        e.g. "stock:ABC".

    timeout : float | None
        Maximum time (in seconds) to wait for acquisition.

        - omitted: the LOCK_TIMEOUT setting.
        - None: block indefinitely.
        - float: raise LockAcquireTimeout if exceeded.

    backend : LockBackend | None
        Backend override. Defaults to the process-local backend.

    Raises
    ------
    LockAcquireTimeout
        If the lock cannot be acquired within the timeout.

    Example
    -------
    >>> with lock("stock:ABC", timeout=1.0):
    ...     sell_one()
    """
    if timeout is DEFAULT_TIMEOUT:
        timeout = get_setting("LOCK_TIMEOUT")
    be = backend or _default_backend

    acquired = be.acquire(key, timeout)

    if not acquired:
        logger.debug("Lock %r not acquired within %ss", key, timeout)
        raise LockAcquireTimeout(key, timeout)

    try:
        yield
    finally:
        # Released on every exit path, including exceptions from the block.
        be.release(key)

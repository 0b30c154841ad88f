from __future__ import annotations

import hashlib
import logging
import time

from django.db import DEFAULT_DB_ALIAS, connections

logger = logging.getLogger(__name__)


def key_to_lock_id(key: str) -> int:
    """
    Map a lock key to a stable signed 64-bit advisory lock id.

    Advisory locks are identified by a BIGINT, while our keys are strings such
    as "stock:ABC". An 8-byte BLAKE2b digest gives the same id in every process
    and on every platform; it is then shifted into PostgreSQL's signed range.
    """
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, byteorder="big", signed=False)

    if value >= 2**63:
        value -= 2**64

    return value


class PostgresAdvisoryLockBackend:
    """
    Named locks backed by PostgreSQL session-level advisory locks.

    Plugging this backend into `MutexDecrementer` turns the in-process mutex
    into one shared by every worker connected to the same database, without
    locking the stock row itself.

    Key properties
    --------------
    - Connection-scoped: the lock belongs to the current thread's database
      connection. If the connection dies, PostgreSQL releases the lock.
    - Non-transactional: commit and rollback do not release it; `release` does.

    Timeout behavior
    ----------------
    - timeout=None: blocks in pg_advisory_lock until acquired.
    - timeout=float: polls pg_try_advisory_lock until the deadline so the
      connection is never parked in an unbounded wait.
    """

    #: Pause between pg_try_advisory_lock attempts.
    poll_interval: float = 0.05

    def __init__(self, using: str = DEFAULT_DB_ALIAS) -> None:
        self.using = using

    def acquire(self, key: str, timeout: float | None) -> bool:
        lock_id = key_to_lock_id(key)
        connection = connections[self.using]

        if timeout is None:
            with connection.cursor() as cursor:
                cursor.execute("SELECT pg_advisory_lock(%s);", [lock_id])
            return True

        deadline = time.monotonic() + timeout

        while True:
            with connection.cursor() as cursor:
                cursor.execute("SELECT pg_try_advisory_lock(%s);", [lock_id])
                acquired = cursor.fetchone()[0]

            if acquired:
                return True

            if time.monotonic() >= deadline:
                logger.debug("Advisory lock %s (%r) still busy at deadline", lock_id, key)
                return False

            time.sleep(self.poll_interval)

    def release(self, key: str) -> None:
        # pg_advisory_unlock only warns for locks this session does not hold.
        lock_id = key_to_lock_id(key)

        with connections[self.using].cursor() as cursor:
            cursor.execute("SELECT pg_advisory_unlock(%s);", [lock_id])

from __future__ import annotations

import threading


class LocalLockBackend:
    """
    In-process named locks built on `threading.Lock`.

    One lock exists per key while at least one thread holds or waits for it;
    idle entries are dropped so the registry does not grow with every SKU
    ever seen.

    The guarantee ends at the process boundary. Two worker processes sharing
    the same database are NOT serialized by this backend; use
    `PostgresAdvisoryLockBackend` or the pessimistic strategy for that.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def acquire(self, key: str, timeout: float | None) -> bool:
        with self._guard:
            key_lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1

        # Negative timeouts mean a single immediate attempt, as in the advisory backend.
        acquired = key_lock.acquire(timeout=-1 if timeout is None else max(0.0, timeout))
        if not acquired:
            self._forget(key)
        return acquired

    def release(self, key: str) -> None:
        """
        Release `key`. Must only be called by the holder.

        Like `pg_advisory_unlock`, releasing a key that is not registered is a
        no-op, so it is safe in finally blocks.
        """
        with self._guard:
            key_lock = self._locks.get(key)
        if key_lock is None or not key_lock.locked():
            return

        key_lock.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def held_keys(self) -> list[str]:
        """Keys currently registered (held or waited on)."""
        with self._guard:
            return sorted(self._locks)

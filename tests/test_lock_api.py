import threading

import pytest

import stock_safe.api as api
from stock_safe.api import lock
from stock_safe.backends.local import LocalLockBackend
from stock_safe.exceptions import LockAcquireTimeout

# Context manager tests

class DummyBackend:
    def __init__(self):
        self.acquired = []
        self.released = []

    def acquire(self, key: str, timeout: float | None) -> bool:
        self.acquired.append((key, timeout))
        return True

    def release(self, key: str) -> None:
        self.released.append(key)


def test_lock_context_manager_acquires_and_releases():
    be = DummyBackend()

    with lock("stock:ABC", timeout=1.0, backend=be):
        pass

    assert be.acquired == [("stock:ABC", 1.0)]
    assert be.released == ["stock:ABC"]


def test_lock_releases_when_block_raises():
    be = DummyBackend()

    with pytest.raises(RuntimeError):
        with lock("stock:ABC", timeout=1.0, backend=be):
            raise RuntimeError("boom")

    assert be.released == ["stock:ABC"]


def test_lock_uses_configured_timeout_by_default(monkeypatch):
    monkeypatch.setattr(api, "get_setting", lambda name: 7.5)
    be = DummyBackend()

    with lock("stock:ABC", backend=be):
        pass

    assert be.acquired == [("stock:ABC", 7.5)]


class NeverBackend:
    def acquire(self, key: str, timeout: float | None) -> bool:
        return False

    def release(self, key: str) -> None:
        raise AssertionError("release should not be called")


def test_lock_raises_timeout_when_not_acquired():
    with pytest.raises(LockAcquireTimeout) as info:
        with lock("stock:ABC", timeout=0.1, backend=NeverBackend()):
            pass

    assert info.value.key == "stock:ABC"
    assert info.value.code == "lock_acquire_timeout"


# Local backend

def test_local_backend_same_key_times_out_while_held():
    be = LocalLockBackend()
    started = threading.Event()
    release = threading.Event()

    def holder():
        with lock("stock:ABC", timeout=1.0, backend=be):
            started.set()
            release.wait(timeout=2.0)

    t = threading.Thread(target=holder)
    t.start()
    assert started.wait(timeout=2.0)

    try:
        with pytest.raises(LockAcquireTimeout):
            with lock("stock:ABC", timeout=0.1, backend=be):
                pass
    finally:
        release.set()
        t.join(timeout=2.0)

    with lock("stock:ABC", timeout=0.1, backend=be):
        pass


def test_local_backend_different_keys_do_not_block():
    be = LocalLockBackend()

    with lock("stock:A", timeout=0.1, backend=be):
        with lock("stock:B", timeout=0.1, backend=be):
            assert be.held_keys() == ["stock:A", "stock:B"]


def test_local_backend_forgets_idle_keys():
    be = LocalLockBackend()

    with lock("stock:ABC", timeout=0.1, backend=be):
        pass

    assert be.held_keys() == []


def test_local_backend_release_of_unknown_key_is_noop():
    LocalLockBackend().release("stock:never-acquired")


@pytest.mark.parametrize("timeout", [-1, -5.0])
def test_local_backend_negative_timeout_is_one_immediate_attempt(timeout):
    be = LocalLockBackend()

    assert be.acquire("stock:ABC", timeout) is True
    try:
        result = {}
        t = threading.Thread(target=lambda: result.update(got=be.acquire("stock:ABC", timeout)))
        t.start()
        t.join(timeout=1.0)
        assert not t.is_alive()
        assert result["got"] is False
    finally:
        be.release("stock:ABC")

    assert be.held_keys() == []

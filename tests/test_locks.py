"""Tests for per-key locking."""

import threading
import time

from firesync.services.locks import KeyedLock


def test_same_key_is_serialized():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def work():
        with locks.hold("taxonomies/category"):
            if inside:
                overlaps.append(True)
            inside.append(True)
            time.sleep(0.02)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert overlaps == []


def test_different_keys_do_not_block():
    locks = KeyedLock()
    entered = threading.Event()

    def hold_other():
        with locks.hold("b"):
            entered.set()

    with locks.hold("a"):
        thread = threading.Thread(target=hold_other)
        thread.start()
        assert entered.wait(timeout=2)
        thread.join(timeout=2)


def test_unused_keys_are_released():
    locks = KeyedLock()

    with locks.hold("a"):
        assert len(locks) == 1

    assert len(locks) == 0


def test_lock_is_released_on_error():
    locks = KeyedLock()

    try:
        with locks.hold("a"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert len(locks) == 0
    with locks.hold("a"):
        pass

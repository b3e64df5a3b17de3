"""Per-key locking."""

import threading
import time

from shared.application.locks import KeyedLock


def test_same_key_is_exclusive():
    locks = KeyedLock()
    inside = []
    overlaps = []

    def worker():
        with locks.hold('booking-1'):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(1)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []
    assert len(locks) == 0


def test_different_keys_do_not_contend():
    locks = KeyedLock()
    acquired = threading.Event()

    def other():
        with locks.hold('booking-2'):
            acquired.set()

    with locks.hold('booking-1'):
        thread = threading.Thread(target=other)
        thread.start()
        assert acquired.wait(1)
    thread.join()


def test_entry_dropped_after_error():
    locks = KeyedLock()
    try:
        with locks.hold('booking-1'):
            assert len(locks) == 1
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert len(locks) == 0

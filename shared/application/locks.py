"""
Keyed locks

Process-local mutual exclusion per key (booking id). Different keys never
contend. Entries are dropped once nobody holds or waits on them.
"""

from contextlib import contextmanager
from threading import Lock
from typing import Dict, Hashable, Iterator, Tuple


class KeyedLock:

    def __init__(self):
        self._guard = Lock()
        self._locks: Dict[Hashable, Tuple[Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, users + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


booking_locks = KeyedLock()

# immoledger/services/locks.py
import threading
from contextlib import contextmanager


class KeyedLock:
    """
    One lock per key, so work on different records never waits on each other.
    An entry lives only while some thread holds or waits for its key.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}   # key -> [lock, holders]

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        return len(self._locks)


# Shared across engine instances: engines are built per request
due_date_locks = KeyedLock()
property_locks = KeyedLock()

"""Keyed in-process locks for short read-compare-write sections.

A lock is only ever held around a persisted read and the conditional write
that follows it, never across a courier round-trip. It serialises writers
inside one process; across processes the aggregate version check rejects
the stale writer. Locks live only while someone holds them.
"""

import threading
import weakref
from contextlib import contextmanager

_registry_lock = threading.Lock()
_locks: "weakref.WeakValueDictionary[tuple[str, str], threading.Lock]" = weakref.WeakValueDictionary()


@contextmanager
def keyed_lock(namespace: str, key: str):
    lock_key = (namespace, str(key))
    with _registry_lock:
        lock = _locks.get(lock_key)
        if lock is None:
            lock = threading.Lock()
            _locks[lock_key] = lock
    with lock:
        yield

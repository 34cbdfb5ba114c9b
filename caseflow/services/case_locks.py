import threading
import uuid
import weakref
from contextlib import contextmanager


class CaseLocks:
    """Per-case mutual exclusion.

    Every mutation of a case runs while holding that case's lock; mutations of
    different cases proceed in parallel. Locks are never held across an
    ``await`` of a collaborator call.

    The registry keeps weak references only, so a lock lives as long as some
    caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, case_id: uuid.UUID) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(case_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[case_id] = lock
            return lock

    @contextmanager
    def hold(self, case_id: uuid.UUID):
        lock = self._lock_for(case_id)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


case_locks = CaseLocks()

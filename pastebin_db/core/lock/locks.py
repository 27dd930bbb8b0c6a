import threading
from typing import Optional, Dict


class ReentrantRWLock:
    """
    A reentrant reader-writer lock with context manager support.

    Any number of threads may hold the read side at once; the write side is
    exclusive. The writing thread may re-enter both sides. A thread that is the
    only reader may upgrade to the write side. Two readers upgrading at the same
    time deadlock, so callers that intend to write take the write side first.

    Writers are preferred: while a writer is waiting, threads that do not
    already hold the read side queue behind it, so a steady stream of readers
    cannot starve writes.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._writer_owner: Optional[int] = None
        self._write_recursion: int = 0
        self._reader_counts: Dict[int, int] = {}
        self._writers_waiting: int = 0

    def acquire_read(self) -> None:
        tid = threading.get_ident()
        with self._cond:
            if self._writer_owner != tid and tid not in self._reader_counts:
                while self._writer_owner is not None or self._writers_waiting:
                    self._cond.wait()
            self._reader_counts[tid] = self._reader_counts.get(tid, 0) + 1

    def release_read(self) -> None:
        tid = threading.get_ident()
        with self._cond:
            count = self._reader_counts.get(tid, 0)
            if count == 0:
                raise RuntimeError("Cannot release read lock: not held by this thread")
            if count == 1:
                self._reader_counts.pop(tid)
            else:
                self._reader_counts[tid] = count - 1
            self._cond.notify_all()

    def acquire_write(self) -> None:
        tid = threading.get_ident()
        with self._cond:
            if self._writer_owner == tid:
                self._write_recursion += 1
                return

            self._writers_waiting += 1
            try:
                while self._writer_owner is not None or any(t != tid for t in self._reader_counts):
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1

            self._writer_owner = tid
            self._write_recursion = 1

    def release_write(self) -> None:
        tid = threading.get_ident()
        with self._cond:
            if self._writer_owner != tid:
                raise RuntimeError("Cannot release write lock: not the owner")

            self._write_recursion -= 1
            if self._write_recursion == 0:
                self._writer_owner = None
                self._cond.notify_all()

    # Context manager support for read lock
    def read_lock(self):
        class ReadLockContext:
            def __init__(self, lock):
                self.lock = lock

            def __enter__(self):
                self.lock.acquire_read()
                return self.lock

            def __exit__(self, exc_type, exc_val, exc_tb):
                self.lock.release_read()

        return ReadLockContext(self)

    # Context manager support for write lock
    def write_lock(self):
        class WriteLockContext:
            def __init__(self, lock):
                self.lock = lock

            def __enter__(self):
                self.lock.acquire_write()
                return self.lock

            def __exit__(self, exc_type, exc_val, exc_tb):
                self.lock.release_write()

        return WriteLockContext(self)

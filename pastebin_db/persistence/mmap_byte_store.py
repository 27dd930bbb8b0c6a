import fcntl
import logging
import mmap
import os
import threading
from pathlib import Path

from pastebin_db.core.interface.storage_interface import ByteStore
from pastebin_exception_model.exception import StorageFailureException

# Set up logger for this module
logger = logging.getLogger(__name__)


class MMapByteStore(ByteStore):
    """
    Memory-mapped file byte store with durability guarantees.

    ┌──────────────────────────────────────────────────────────────────────┐
    │                         FILE STRUCTURE                               │
    ├──────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  ┌────────┬────────┬────────┬────────┬─────────────────────────┐     │
    │  │ page 0 │ page 1 │ page 2 │  ...   │       page N-1          │     │
    │  └────────┴────────┴────────┴────────┴─────────────────────────┘     │
    │  0                                                   N * page_size   │
    │                                                                      │
    │  The file is a flat address space. Its size is always a whole        │
    │  number of pages and only ever grows. Layout above the byte level    │
    │  (regions, buckets) belongs to the RegionAllocator.                  │
    └──────────────────────────────────────────────────────────────────────┘

    Write path:

    Application Thread                  MMapByteStore                   File System
    ┌─────────────────┐               ┌─────────────────┐             ┌─────────────────┐
    │ write(off, b)   │──────────────▶│ acquire lock    │             │                 │
    │                 │               │ resize if short │────────────▶│ truncate+fsync  │
    │                 │               │ copy into mmap  │             │                 │
    │                 │               │ mmap.flush()    │────────────▶│ msync           │
    │                 │               │ os.fsync()      │────────────▶│ fsync           │
    │ returns         │◀──────────────│ release lock    │             │                 │
    └─────────────────┘               └─────────────────┘             └─────────────────┘

    A write returns only after the bytes reached stable storage. The lock
    serializes mmap access so a remap during resize never races a read.
    """
    def __init__(self, path: str, page_size: int = 4096, initial_size: int = 4096):
        self._path = Path(path)
        self._page_size = page_size
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._open_file()
        self._lock = threading.Lock()
        self._mmap = None

        # Initialize size from the file on disk
        self._file.seek(0, os.SEEK_END)
        size = self._file.tell()

        # A zero-length file cannot be mapped
        if size == 0 or size < initial_size:
            self._resize_file(max(initial_size, 1))
        else:
            self._mmap = mmap.mmap(self._file.fileno(), 0)
        logger.info(f"Opened byte store {self._path} ({len(self._mmap)} bytes)")

    def _open_file(self):
        if not self._path.exists():
            self._path.touch()
        f = self._path.open('r+b')
        # Attempt file lock, but don’t fail if it’s already held
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            logger.warning(
                f"Could not acquire exclusive lock on {self._path}, proceeding without lock")
        return f

    def _resize_file(self, new_size: int):
        """Resize the file with proper fsync."""
        new_size = ((new_size + self._page_size - 1) // self._page_size) * self._page_size
        try:
            self._file.truncate(new_size)
            self._file.flush()
            os.fsync(self._file.fileno())  # Ensure resize is durable

            if self._mmap is not None:
                self._mmap.close()
            self._mmap = mmap.mmap(self._file.fileno(), 0)
        except OSError as e:
            raise StorageFailureException(f"Failed to resize byte store to {new_size} bytes",
                                          path=str(self._path), cause=e)
        logger.debug(f"Resized {self._path} to {new_size} bytes")

    def size(self) -> int:
        with self._lock:
            return len(self._mmap)

    def grow(self, new_size: int) -> None:
        with self._lock:
            if new_size > len(self._mmap):
                self._resize_file(new_size)

    def read(self, offset: int, length: int) -> bytes:
        with self._lock:
            if offset < 0 or length < 0 or offset + length > len(self._mmap):
                raise ValueError(
                    f"Read range {offset}:{offset + length} exceeds store size {len(self._mmap)}")
            return self._mmap[offset:offset + length]

    def write(self, offset: int, data: bytes) -> None:
        """Write with proper fsync for durability."""
        if offset < 0:
            raise ValueError(f"Negative write offset {offset}")

        with self._lock:
            required_size = offset + len(data)
            if len(self._mmap) < required_size:
                self._resize_file(required_size)

            self._mmap[offset:offset + len(data)] = data
            self._sync()

    def _sync(self):
        try:
            self._mmap.flush()
            self._file.flush()
            os.fsync(self._file.fileno())  # Ensure data is on disk
        except OSError as e:
            raise StorageFailureException("Failed to sync byte store", path=str(self._path), cause=e)

    def flush(self) -> None:
        """Flush with proper fsync."""
        with self._lock:
            self._sync()

    def close(self) -> None:
        with self._lock:
            if self._mmap is not None:
                self._mmap.close()
                self._mmap = None
            if self._file is not None and not self._file.closed:
                # Release file lock
                fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
                self._file.close()
        logger.info(f"Closed byte store {self._path}")

from abc import ABC, abstractmethod


class ByteStore(ABC):
    """
    Abstract interface for a flat, resizable byte address space.

    Implementations handle the physical storage details (memory-mapped file,
    in-process buffer) while providing a consistent interface for the region
    allocator layered on top.
    """

    @abstractmethod
    def size(self) -> int:
        """Current size of the address space in bytes."""
        ...

    @abstractmethod
    def read(self, offset: int, length: int) -> bytes:
        """
        Read `length` bytes starting from `offset`.

        Raises:
            ValueError: If the requested range lies outside the store
        """
        ...

    @abstractmethod
    def write(self, offset: int, data: bytes) -> None:
        """
        Write `data` at `offset`, growing the store if needed.

        Durable implementations must not return before the bytes are on stable storage.

        Raises:
            StorageFailureException: If the write cannot be persisted
        """
        ...

    @abstractmethod
    def grow(self, new_size: int) -> None:
        """Ensure the address space is at least `new_size` bytes. Never shrinks."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """
        Flush any in-memory buffers to stable storage.

        Raises:
            StorageFailureException: If the flush operation fails
        """
        ...

    def close(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class Region(ABC):
    """
    A disjoint, independently addressed partition of a ByteStore.

    Offsets are relative to the start of the region. A region grows on demand
    and never overlaps another region.
    """

    @property
    @abstractmethod
    def region_id(self) -> int:
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def size(self) -> int:
        """Addressable size of the region in bytes."""
        ...

    @abstractmethod
    def read(self, offset: int, length: int) -> bytes:
        """
        Raises:
            ValueError: If the range reaches past the end of the region
        """
        ...

    @abstractmethod
    def write(self, offset: int, data: bytes) -> None:
        """Durably write `data` at `offset`, growing the region when the write ends past it."""
        ...

    @abstractmethod
    def grow(self, min_size: int) -> None:
        ...

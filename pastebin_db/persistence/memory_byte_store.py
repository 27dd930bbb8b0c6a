import threading

from pastebin_db.core.interface.storage_interface import ByteStore


class InMemoryByteStore(ByteStore):
    """Byte store backed by a bytearray. Nothing survives the process."""

    def __init__(self, initial_size: int = 0):
        self._buffer = bytearray(initial_size)
        self._lock = threading.Lock()

    def size(self) -> int:
        with self._lock:
            return len(self._buffer)

    def grow(self, new_size: int) -> None:
        with self._lock:
            if new_size > len(self._buffer):
                self._buffer.extend(b"\x00" * (new_size - len(self._buffer)))

    def read(self, offset: int, length: int) -> bytes:
        with self._lock:
            if offset < 0 or length < 0 or offset + length > len(self._buffer):
                raise ValueError(
                    f"Read range {offset}:{offset + length} exceeds store size {len(self._buffer)}")
            return bytes(self._buffer[offset:offset + length])

    def write(self, offset: int, data: bytes) -> None:
        if offset < 0:
            raise ValueError(f"Negative write offset {offset}")
        with self._lock:
            end = offset + len(data)
            if len(self._buffer) < end:
                self._buffer.extend(b"\x00" * (end - len(self._buffer)))
            self._buffer[offset:end] = data

    def flush(self) -> None:
        pass

import logging
import struct
import threading
import zlib
from typing import Optional

from pastebin_data_model.paste import U64_MAX
from pastebin_db.core.interface.storage_interface import Region
from pastebin_exception_model.exception import CorruptRecordError, StorageFailureException

logger = logging.getLogger(__name__)

MAGIC_BYTES: bytes = b'PCTR'
CELL_FORMAT: str = '<4s Q'  # magic, value
CELL_BODY_SIZE: int = struct.calcsize(CELL_FORMAT)
CELL_SIZE: int = CELL_BODY_SIZE + 4  # + crc32
CELL_COUNT: int = 2


class IdCounter:
    """
    Durable unsigned 64-bit counter used to mint paste ids.

    The counter keeps two cells and always writes the new value into the cell
    that does not hold the current one. A torn write can therefore only damage
    the cell being replaced; on attach the valid cell with the larger value wins.

    Attributes:
        _region (Region): Region holding the two cells
        _value (int): Current value; strictly greater than every id handed out
        _lock (threading.Lock): Serializes read-increment-persist
    """

    def __init__(self, region: Region):
        self._region = region
        self._lock = threading.Lock()
        self._region.grow(CELL_SIZE * CELL_COUNT)

        value = self._load()
        if value is None:
            self._value = 0
            self._persist(0)
            logger.info(f"Initialized id counter in region '{region.name}' at 0")
        else:
            self._value = value
            logger.info(f"Attached id counter in region '{region.name}' at {value}")

    @staticmethod
    def _encode_cell(value: int) -> bytes:
        body = struct.pack(CELL_FORMAT, MAGIC_BYTES, value)
        return body + struct.pack('<I', zlib.crc32(body) & 0xFFFFFFFF)

    @staticmethod
    def _decode_cell(raw: bytes) -> Optional[int]:
        body, (checksum,) = raw[:CELL_BODY_SIZE], struct.unpack('<I', raw[CELL_BODY_SIZE:])
        magic, value = struct.unpack(CELL_FORMAT, body)
        if magic != MAGIC_BYTES or checksum != zlib.crc32(body) & 0xFFFFFFFF:
            return None
        return value

    def _load(self) -> Optional[int]:
        raw = self._region.read(0, CELL_SIZE * CELL_COUNT)
        cells = [raw[i * CELL_SIZE:(i + 1) * CELL_SIZE] for i in range(CELL_COUNT)]
        values = [v for v in (self._decode_cell(c) for c in cells) if v is not None]
        if values:
            return max(values)
        if all(c == b"\x00" * CELL_SIZE for c in cells):
            return None
        raise CorruptRecordError("Both id counter cells failed validation", offset=0)

    def _persist(self, value: int):
        # Alternate cells by parity so the current value is never overwritten
        self._region.write((value % CELL_COUNT) * CELL_SIZE, self._encode_cell(value))

    def current(self) -> int:
        with self._lock:
            return self._value

    def next_id(self) -> int:
        """Return the current value and durably advance the counter by one."""
        with self._lock:
            v = self._value
            if v >= U64_MAX:
                raise StorageFailureException("Paste id space exhausted")
            self._persist(v + 1)
            self._value = v + 1
            return v

    def ensure_above(self, floor: int) -> None:
        """Advance the counter so it is strictly greater than `floor`."""
        with self._lock:
            if self._value <= floor:
                logger.warning(f"Id counter {self._value} is not above stored id {floor}; repairing")
                self._persist(floor + 1)
                self._value = floor + 1

"""
Ordered, durable map from paste id to encoded Paste, laid out as fixed-size
slots inside one region.

REGION LAYOUT:
═══════════════════════════════════════════════════════════════════════════════

  ┌──────────────┬───────────────────┬───────────────────┬─────┬───────────────┐
  │ map header   │      slot 0       │      slot 1       │ ... │    slot N     │
  │ <4s I>       │                   │                   │     │               │
  └──────────────┴───────────────────┴───────────────────┴─────┴───────────────┘
  0              SLOTS_OFFSET

  map header: magic 'PMAP', slot payload capacity (fixed at first format)

  slot:
  ┌────────┬─────────┬─────────┬──────────┬─────────┬───────────────────────────┐
  │ status │ key     │ lsn     │ length   │ crc32   │ payload (capacity bytes)  │
  │ 1 byte │ 8 bytes │ 8 bytes │ 2 bytes  │ 4 bytes │                           │
  └────────┴─────────┴─────────┴──────────┴─────────┴───────────────────────────┘

  status: 0 empty, 1 uncommitted, 2 committed, 3 deleted
  crc32 covers key, lsn, length and payload.

WRITE FLOW (insert_or_replace):
───────────────────────────────

1. [ENCODE] Codec encodes the Paste (oversize rejected before any write)
2. [SLOT] Take the lowest free slot, or append a new one
3. [PREPARE] Write header (status=uncommitted) + payload, fsync
4. [COMMIT] Flip status byte to committed, fsync     <- record becomes visible
5. [RETIRE] Flip the replaced slot (if any) to deleted, fsync
6. [INDEX] Point key at the new slot in memory

RECOVERY (on attach):
─────────────────────

• committed + valid crc  -> live; two live slots for one key keep the higher lsn
                            and the other is retired
• committed + bad crc    -> CorruptRecordError
• uncommitted / deleted  -> free
• empty after the last used slot -> end of map

Reads share the map's reader/writer lock; writes take it exclusively.
"""
import bisect
import heapq
import logging
import struct
import zlib
from typing import Dict, List, Optional, Tuple

from pastebin_data_model.paste import Paste, PasteId
from pastebin_data_model.paste_codec import PasteCodec
from pastebin_db.core.interface.storage_interface import Region
from pastebin_db.core.lock.locks import ReentrantRWLock
from pastebin_exception_model.exception import CorruptRecordError, StorageFailureException

logger = logging.getLogger(__name__)

MAGIC_BYTES: bytes = b'PMAP'
MAP_HEADER_FORMAT: str = '<4s I'  # magic, slot payload capacity
MAP_HEADER_SIZE: int = struct.calcsize(MAP_HEADER_FORMAT)
SLOTS_OFFSET: int = 64

SLOT_HEADER_FORMAT: str = '<B Q Q H I'  # status, key, lsn, payload length, crc32
SLOT_HEADER_SIZE: int = struct.calcsize(SLOT_HEADER_FORMAT)

STATUS_EMPTY = 0
STATUS_UNCOMMITTED = 1
STATUS_COMMITTED = 2
STATUS_DELETED = 3


def _slot_checksum(key: int, lsn: int, payload: bytes) -> int:
    return zlib.crc32(struct.pack('<Q Q H', key, lsn, len(payload)) + payload) & 0xFFFFFFFF


def _decode_record(codec: PasteCodec, key: PasteId, payload: bytes) -> Paste:
    paste = codec.decode(payload)
    if paste.id != key:
        raise CorruptRecordError(f"Stored record {paste.id} does not match key {key}", paste_id=key)
    return paste


class RecordView:
    """
    Snapshot of the map's records in ascending id order.

    Holds the encoded bytes captured at creation and decodes lazily. Iterating
    again restarts from the first record; slicing returns another view.
    """

    def __init__(self, entries: List[Tuple[PasteId, bytes]], codec: PasteCodec):
        self._entries = entries
        self._codec = codec

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        for key, payload in self._entries:
            yield _decode_record(self._codec, key, payload)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return RecordView(self._entries[item], self._codec)
        key, payload = self._entries[item]
        return _decode_record(self._codec, key, payload)


class RecordMap:
    """
    Durable ordered map PasteId -> Paste over a single region.

    Attributes:
        _region (Region): Region holding the map header and slots
        _codec (PasteCodec): Encodes values; its bound must fit the slot capacity
        _index (Dict[int, Tuple[int, int]]): key -> (slot, lsn) of the live record
        _keys (List[int]): Sorted live keys
        _free (List[int]): Min-heap of reusable slots
        _slot_count (int): Slots in use or reusable; new slots are appended after it
        _next_lsn (int): Write sequence number for the next committed slot
    """

    def __init__(self, region: Region, codec: PasteCodec):
        self._region = region
        self._codec = codec
        self._lock = ReentrantRWLock()
        self._index: Dict[int, Tuple[int, int]] = {}
        self._keys: List[int] = []
        self._free: List[int] = []
        self._slot_count = 0
        self._next_lsn = 1

        self._capacity = self._attach_or_format()
        self._slot_size = SLOT_HEADER_SIZE + self._capacity
        self._recover()

    # ------------------------
    # LAYOUT / RECOVERY
    # ------------------------

    def _attach_or_format(self) -> int:
        magic = b"\x00" * 4
        if self._region.size() >= MAP_HEADER_SIZE:
            magic, capacity = struct.unpack(MAP_HEADER_FORMAT, self._region.read(0, MAP_HEADER_SIZE))

        if magic == b"\x00" * 4:
            capacity = self._codec.max_record_size
            self._region.write(0, struct.pack(MAP_HEADER_FORMAT, MAGIC_BYTES, capacity))
            logger.info(f"Formatted record map in region '{self._region.name}' (slot capacity {capacity})")
            return capacity
        if magic != MAGIC_BYTES:
            raise StorageFailureException(f"Invalid record map magic bytes: {magic!r}")
        if self._codec.max_record_size > capacity:
            raise StorageFailureException(
                f"Record size bound {self._codec.max_record_size} exceeds stored slot capacity {capacity}")
        return capacity

    def _slot_offset(self, slot: int) -> int:
        return SLOTS_OFFSET + slot * self._slot_size

    def _recover(self):
        total_slots = max(0, (self._region.size() - SLOTS_OFFSET) // self._slot_size)
        free: List[int] = []
        retired = 0
        max_lsn = 0

        for slot in range(total_slots):
            raw = self._region.read(self._slot_offset(slot), self._slot_size)
            status, key, lsn, length, checksum = struct.unpack(SLOT_HEADER_FORMAT, raw[:SLOT_HEADER_SIZE])
            if status == STATUS_EMPTY:
                continue
            self._slot_count = slot + 1
            if status != STATUS_COMMITTED:
                free.append(slot)
                continue

            payload = raw[SLOT_HEADER_SIZE:SLOT_HEADER_SIZE + length]
            if length > self._capacity or _slot_checksum(key, lsn, payload) != checksum:
                logger.error(f"Committed slot {slot} failed validation during recovery")
                raise CorruptRecordError("Slot checksum mismatch", paste_id=key,
                                         offset=self._slot_offset(slot))

            max_lsn = max(max_lsn, lsn)
            existing = self._index.get(key)
            if existing is None:
                self._index[key] = (slot, lsn)
                continue
            # Crash between commit and retire left two live copies
            loser = slot if lsn < existing[1] else existing[0]
            if loser == existing[0]:
                self._index[key] = (slot, lsn)
            self._set_status(loser, STATUS_DELETED)
            free.append(loser)
            retired += 1

        # Never-written slots below the high-water mark are reusable too
        used = {slot for slot, _ in self._index.values()}
        free_set = set(free)
        for slot in range(self._slot_count):
            if slot not in used and slot not in free_set:
                free.append(slot)

        self._keys = sorted(self._index)
        self._free = sorted(free)
        heapq.heapify(self._free)
        self._next_lsn = max_lsn + 1
        logger.info(f"Recovered record map '{self._region.name}': {len(self._keys)} records, "
                    f"{len(self._free)} free slots, {retired} stale copies retired")

    # ------------------------
    # SLOT I/O
    # ------------------------

    def _set_status(self, slot: int, status: int):
        self._region.write(self._slot_offset(slot), bytes([status]))

    def _write_slot(self, slot: int, key: int, lsn: int, payload: bytes):
        header = struct.pack(SLOT_HEADER_FORMAT, STATUS_UNCOMMITTED, key, lsn, len(payload),
                             _slot_checksum(key, lsn, payload))
        # The whole slot must lie inside the region or recovery will not scan it
        self._region.grow(self._slot_offset(slot) + self._slot_size)
        self._region.write(self._slot_offset(slot), header + payload)
        self._set_status(slot, STATUS_COMMITTED)

    def _read_payload(self, slot: int, key: int) -> bytes:
        offset = self._slot_offset(slot)
        raw = self._region.read(offset, self._slot_size)
        status, stored_key, lsn, length, checksum = struct.unpack(SLOT_HEADER_FORMAT, raw[:SLOT_HEADER_SIZE])
        if status != STATUS_COMMITTED or stored_key != key or length > self._capacity:
            raise CorruptRecordError(f"Slot {slot} does not hold a committed record for key {key}",
                                     paste_id=key, offset=offset)
        payload = raw[SLOT_HEADER_SIZE:SLOT_HEADER_SIZE + length]
        if _slot_checksum(stored_key, lsn, payload) != checksum:
            raise CorruptRecordError("Slot checksum mismatch", paste_id=key, offset=offset)
        return payload

    def _take_slot(self) -> int:
        if self._free:
            return heapq.heappop(self._free)
        slot = self._slot_count
        self._slot_count += 1
        return slot

    # ------------------------
    # PUBLIC API
    # ------------------------

    def get(self, key: PasteId) -> Optional[Paste]:
        with self._lock.read_lock():
            entry = self._index.get(key)
            if entry is None:
                return None
            return _decode_record(self._codec, key, self._read_payload(entry[0], key))

    def insert_or_replace(self, key: PasteId, paste: Paste) -> None:
        if paste.id != key:
            raise ValueError(f"Paste id {paste.id} does not match key {key}")
        payload = self._codec.encode(paste)

        with self._lock.write_lock():
            slot = self._take_slot()
            lsn = self._next_lsn
            try:
                self._write_slot(slot, key, lsn, payload)
            except Exception:
                heapq.heappush(self._free, slot)
                raise
            self._next_lsn += 1

            previous = self._index.get(key)
            self._index[key] = (slot, lsn)
            if previous is None:
                bisect.insort(self._keys, key)
            else:
                self._set_status(previous[0], STATUS_DELETED)
                heapq.heappush(self._free, previous[0])
            logger.debug(f"Stored key {key} in slot {slot} (lsn {lsn})")

    def remove(self, key: PasteId) -> Optional[Paste]:
        with self._lock.write_lock():
            entry = self._index.get(key)
            if entry is None:
                return None
            paste = _decode_record(self._codec, key, self._read_payload(entry[0], key))

            self._set_status(entry[0], STATUS_DELETED)
            del self._index[key]
            self._keys.pop(bisect.bisect_left(self._keys, key))
            heapq.heappush(self._free, entry[0])
            logger.debug(f"Removed key {key} from slot {entry[0]}")
            return paste

    def values(self) -> RecordView:
        """Consistent snapshot of all records, ascending by id."""
        with self._lock.read_lock():
            entries = [(key, self._read_payload(self._index[key][0], key)) for key in self._keys]
        return RecordView(entries, self._codec)

    def max_key(self) -> Optional[PasteId]:
        with self._lock.read_lock():
            return self._keys[-1] if self._keys else None

    def write_lock(self):
        return self._lock.write_lock()

    def __len__(self):
        with self._lock.read_lock():
            return len(self._keys)

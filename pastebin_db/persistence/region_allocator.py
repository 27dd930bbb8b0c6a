"""
Region allocator: partitions one ByteStore into disjoint, named regions.

LAYOUT:
═══════════════════════════════════════════════════════════════════════════════

  offset 0
  ┌──────────────────────────────────────────────┐
  │ header  <4s B I I>                           │  magic 'PRGN', version,
  │                                              │  bucket size, allocated buckets
  ├──────────────────────────────────────────────┤
  │ region name table  255 x 16 bytes            │  name bound to each region id
  ├──────────────────────────────────────────────┤
  │ bucket table  32768 x 1 byte                 │  owning region id per bucket
  │                                              │  (255 = unallocated)
  ├──────────────────────────────────────────────┤  <- DATA_OFFSET (page aligned)
  │ bucket 0                                     │
  ├──────────────────────────────────────────────┤
  │ bucket 1                                     │
  ├──────────────────────────────────────────────┤
  │ ...                                          │
  └──────────────────────────────────────────────┘

A region is the ordered list of buckets it owns. Buckets are handed out in
increasing index order, so sorting a region's buckets by index reproduces its
logical address space after a restart:

  region 0 'counter'  : bucket 0
  region 1 'records'  : bucket 1, bucket 2, bucket 5, ...

DURABILITY:
═══════════

• Fresh store: tables are written first, the header (with magic) last, so a
  store without magic is always treated as uninitialized.
• Bucket allocation: the bucket table entry is written before the allocated
  count is bumped. A crash between the two leaves the entry past the count,
  where it is ignored and later overwritten.
• Name binding: a region id is bound to a name on first use and the binding
  is permanent. Asking for the same id under another name fails.
"""
import logging
import struct
import threading
from typing import Dict, List

from pastebin_db.core.interface.storage_interface import ByteStore, Region
from pastebin_exception_model.exception import StorageFailureException

logger = logging.getLogger(__name__)

MAGIC_BYTES: bytes = b'PRGN'
LAYOUT_VERSION: int = 1
HEADER_FORMAT: str = '<4s B I I'  # magic, version, bucket size, allocated buckets
HEADER_SIZE: int = struct.calcsize(HEADER_FORMAT)

MAX_REGIONS: int = 255
UNALLOCATED_BUCKET: int = 255
REGION_NAME_SIZE: int = 16
MAX_BUCKETS: int = 32768

NAME_TABLE_OFFSET: int = HEADER_SIZE
BUCKET_TABLE_OFFSET: int = NAME_TABLE_OFFSET + MAX_REGIONS * REGION_NAME_SIZE
_TABLE_END: int = BUCKET_TABLE_OFFSET + MAX_BUCKETS
DATA_OFFSET: int = ((_TABLE_END + 4095) // 4096) * 4096

DEFAULT_BUCKET_SIZE: int = 65536


class VirtualRegion(Region):
    """A region addressed through the allocator's bucket table."""

    def __init__(self, allocator: 'RegionAllocator', region_id: int, name: str):
        self._allocator = allocator
        self._region_id = region_id
        self._name = name

    @property
    def region_id(self) -> int:
        return self._region_id

    @property
    def name(self) -> str:
        return self._name

    def size(self) -> int:
        return len(self._allocator.buckets_of(self._region_id)) * self._allocator.bucket_size

    def grow(self, min_size: int) -> None:
        self._allocator.ensure_region_size(self._region_id, min_size)

    def read(self, offset: int, length: int) -> bytes:
        if offset < 0 or length < 0 or offset + length > self.size():
            raise ValueError(
                f"Read range {offset}:{offset + length} exceeds region '{self._name}' size {self.size()}")
        chunks = []
        for physical, chunk_len in self._allocator.translate(self._region_id, offset, length):
            chunks.append(self._allocator.store.read(physical, chunk_len))
        return b"".join(chunks)

    def write(self, offset: int, data: bytes) -> None:
        if offset < 0:
            raise ValueError(f"Negative write offset {offset}")
        end = offset + len(data)
        if end > self.size():
            self.grow(end)
        pos = 0
        for physical, chunk_len in self._allocator.translate(self._region_id, offset, len(data)):
            self._allocator.store.write(physical, data[pos:pos + chunk_len])
            pos += chunk_len

    def __repr__(self):
        return f"VirtualRegion(id={self._region_id}, name={self._name!r}, size={self.size()})"


class RegionAllocator:
    """
    Assigns buckets of a ByteStore to numbered regions.

    Initialization is idempotent: a populated store is reattached, never
    reformatted, and its stored bucket size takes precedence over the argument.
    """

    def __init__(self, store: ByteStore, bucket_size: int = DEFAULT_BUCKET_SIZE):
        self._store = store
        self._lock = threading.Lock()
        self._regions: Dict[int, VirtualRegion] = {}
        self._names: List[str] = [""] * MAX_REGIONS
        self._region_buckets: Dict[int, List[int]] = {}

        magic = b"\x00" * 4
        if store.size() >= HEADER_SIZE:
            magic, version, stored_bucket_size, allocated = struct.unpack(
                HEADER_FORMAT, store.read(0, HEADER_SIZE))

        if magic == b"\x00" * 4:
            self._format(bucket_size)
        elif magic != MAGIC_BYTES:
            raise StorageFailureException(f"Invalid region allocator magic bytes: {magic!r}")
        elif version != LAYOUT_VERSION:
            raise StorageFailureException(f"Unsupported region layout version: {version}")
        else:
            if stored_bucket_size != bucket_size:
                logger.warning(
                    f"Requested bucket size {bucket_size} differs from stored {stored_bucket_size}; using stored value")
            self._attach(stored_bucket_size, allocated)

    def _format(self, bucket_size: int):
        if bucket_size <= 0:
            raise ValueError("bucket_size must be positive")
        self._bucket_size = bucket_size
        self._allocated = 0
        self._store.grow(DATA_OFFSET)
        self._store.write(NAME_TABLE_OFFSET, b"\x00" * (MAX_REGIONS * REGION_NAME_SIZE))
        self._store.write(BUCKET_TABLE_OFFSET, bytes([UNALLOCATED_BUCKET]) * MAX_BUCKETS)
        self._write_header()
        logger.info(f"Formatted new region layout (bucket size {bucket_size})")

    def _attach(self, bucket_size: int, allocated: int):
        self._bucket_size = bucket_size
        self._allocated = allocated

        raw_names = self._store.read(NAME_TABLE_OFFSET, MAX_REGIONS * REGION_NAME_SIZE)
        for region_id in range(MAX_REGIONS):
            entry = raw_names[region_id * REGION_NAME_SIZE:(region_id + 1) * REGION_NAME_SIZE]
            self._names[region_id] = entry.rstrip(b"\x00").decode('utf-8')

        table = self._store.read(BUCKET_TABLE_OFFSET, allocated)
        for bucket, owner in enumerate(table):
            if owner != UNALLOCATED_BUCKET:
                self._region_buckets.setdefault(owner, []).append(bucket)

        logger.info(f"Attached to region layout: {allocated} buckets of {bucket_size} bytes, "
                    f"{sum(1 for n in self._names if n)} named regions")

    def _write_header(self):
        self._store.write(0, struct.pack(HEADER_FORMAT, MAGIC_BYTES, LAYOUT_VERSION,
                                         self._bucket_size, self._allocated))

    @property
    def store(self) -> ByteStore:
        return self._store

    @property
    def bucket_size(self) -> int:
        return self._bucket_size

    @property
    def allocated_buckets(self) -> int:
        return self._allocated

    def region(self, region_id: int, name: str) -> VirtualRegion:
        """Return the region bound to `region_id`, binding it to `name` on first use."""
        if not 0 <= region_id < MAX_REGIONS:
            raise ValueError(f"Region id must be in [0, {MAX_REGIONS}), got {region_id}")
        encoded = name.encode('utf-8')
        if not encoded or len(encoded) > REGION_NAME_SIZE:
            raise ValueError(f"Region name must be 1-{REGION_NAME_SIZE} bytes of UTF-8")

        with self._lock:
            stored = self._names[region_id]
            if not stored:
                self._store.write(NAME_TABLE_OFFSET + region_id * REGION_NAME_SIZE,
                                  encoded.ljust(REGION_NAME_SIZE, b"\x00"))
                self._names[region_id] = name
                logger.info(f"Bound region {region_id} to '{name}'")
            elif stored != name:
                raise StorageFailureException(
                    f"Region {region_id} is bound to '{stored}', cannot reuse it for '{name}'")

            if region_id not in self._regions:
                self._regions[region_id] = VirtualRegion(self, region_id, name)
            return self._regions[region_id]

    def buckets_of(self, region_id: int) -> List[int]:
        return self._region_buckets.get(region_id, [])

    def ensure_region_size(self, region_id: int, min_size: int) -> None:
        with self._lock:
            while len(self.buckets_of(region_id)) * self._bucket_size < min_size:
                self._allocate_bucket(region_id)

    def _allocate_bucket(self, region_id: int) -> int:
        if self._allocated >= MAX_BUCKETS:
            raise StorageFailureException(f"No free buckets left ({MAX_BUCKETS} allocated)")
        bucket = self._allocated
        self._store.grow(self._bucket_offset(bucket) + self._bucket_size)
        self._store.write(BUCKET_TABLE_OFFSET + bucket, bytes([region_id]))
        self._allocated += 1
        self._write_header()
        self._region_buckets.setdefault(region_id, []).append(bucket)
        logger.debug(f"Allocated bucket {bucket} to region {region_id}")
        return bucket

    def _bucket_offset(self, bucket: int) -> int:
        return DATA_OFFSET + bucket * self._bucket_size

    def translate(self, region_id: int, offset: int, length: int):
        """Yield (physical offset, chunk length) pairs covering a region range."""
        buckets = self.buckets_of(region_id)
        while length > 0:
            index, inner = divmod(offset, self._bucket_size)
            chunk = min(length, self._bucket_size - inner)
            yield self._bucket_offset(buckets[index]) + inner, chunk
            offset += chunk
            length -= chunk

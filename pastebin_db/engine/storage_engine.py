import logging
from typing import Optional

from pastebin_data_model.paste_codec import PasteCodec
from pastebin_db.config import Settings, settings as default_settings
from pastebin_db.core.interface.storage_interface import ByteStore
from pastebin_db.persistence.id_counter import IdCounter
from pastebin_db.persistence.memory_byte_store import InMemoryByteStore
from pastebin_db.persistence.mmap_byte_store import MMapByteStore
from pastebin_db.persistence.record_map import RecordMap
from pastebin_db.persistence.region_allocator import RegionAllocator

# Set up logger for this module
logger = logging.getLogger(__name__)

# Region ids are part of the on-disk layout and must never be reassigned
COUNTER_REGION_ID = 0
COUNTER_REGION_NAME = "counter"
RECORDS_REGION_ID = 1
RECORDS_REGION_NAME = "records"


class PasteStorageEngine:
    """
    Owns the durable state of the paste store.

    Wires one byte store into two regions: the id counter cell and the record
    map. Constructing an engine over an already populated store reattaches to
    the existing regions; nothing is reformatted. After attach the counter is
    repaired upward if it does not exceed the largest stored id.

    Attributes:
        byte_store (ByteStore): Durable substrate
        allocator (RegionAllocator): Region partitioning of the byte store
        codec (PasteCodec): Record codec bounding every stored paste
        counter (IdCounter): Mints paste ids
        records (RecordMap): Paste id -> Paste
    """

    def __init__(self, byte_store: ByteStore, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.byte_store = byte_store
        self.allocator = RegionAllocator(byte_store, bucket_size=settings.bucket_size)
        self.codec = PasteCodec(max_record_size=settings.max_record_size)
        self.counter = IdCounter(self.allocator.region(COUNTER_REGION_ID, COUNTER_REGION_NAME))
        self.records = RecordMap(self.allocator.region(RECORDS_REGION_ID, RECORDS_REGION_NAME), self.codec)

        max_key = self.records.max_key()
        if max_key is not None:
            self.counter.ensure_above(max_key)
        logger.info(f"Storage engine ready: {len(self.records)} pastes, next id {self.counter.current()}")

    @classmethod
    def open(cls, path: Optional[str] = None, settings: Optional[Settings] = None) -> 'PasteStorageEngine':
        """Open (or create) a durable engine backed by a memory-mapped file."""
        settings = settings or default_settings
        store = MMapByteStore(path or settings.data_path, page_size=settings.page_size,
                              initial_size=settings.initial_size)
        try:
            return cls(store, settings)
        except Exception:
            store.close()
            raise

    @classmethod
    def in_memory(cls, settings: Optional[Settings] = None) -> 'PasteStorageEngine':
        """Engine over a process-local buffer; nothing survives a restart."""
        return cls(InMemoryByteStore(), settings)

    def flush(self) -> None:
        self.byte_store.flush()

    def close(self) -> None:
        self.byte_store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

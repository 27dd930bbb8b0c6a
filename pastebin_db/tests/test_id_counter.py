import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from pastebin_data_model.paste import U64_MAX
from pastebin_db.persistence.id_counter import IdCounter, CELL_SIZE
from pastebin_db.persistence.memory_byte_store import InMemoryByteStore
from pastebin_db.persistence.region_allocator import RegionAllocator
from pastebin_exception_model.exception import CorruptRecordError, StorageFailureException


class TestIdCounter(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryByteStore()
        self.allocator = RegionAllocator(self.store, bucket_size=256)
        self.region = self.allocator.region(0, "counter")

    def _reattach(self) -> IdCounter:
        allocator = RegionAllocator(self.store, bucket_size=256)
        return IdCounter(allocator.region(0, "counter"))

    def test_starts_at_zero(self):
        counter = IdCounter(self.region)
        self.assertEqual(counter.current(), 0)
        self.assertEqual(counter.next_id(), 0)
        self.assertEqual(counter.next_id(), 1)
        self.assertEqual(counter.current(), 2)

    def test_value_survives_reattach(self):
        counter = IdCounter(self.region)
        for _ in range(5):
            counter.next_id()
        self.assertEqual(self._reattach().next_id(), 5)

    def test_torn_cell_falls_back_to_previous_value(self):
        counter = IdCounter(self.region)
        counter.next_id()
        counter.next_id()  # value 2 lives in cell 0, value 1 in cell 1
        self.region.write(4, b"\xff")  # damage cell 0
        self.assertEqual(self._reattach().current(), 1)

    def test_both_cells_corrupt(self):
        IdCounter(self.region).next_id()
        self.region.write(4, b"\xff")
        self.region.write(CELL_SIZE + 4, b"\xff")
        with self.assertRaises(CorruptRecordError):
            self._reattach()

    def test_ensure_above(self):
        counter = IdCounter(self.region)
        counter.ensure_above(41)
        self.assertEqual(counter.next_id(), 42)
        counter.ensure_above(10)
        self.assertEqual(counter.current(), 43)
        self.assertEqual(self._reattach().current(), 43)

    def test_exhausted_id_space(self):
        counter = IdCounter(self.region)
        counter.ensure_above(U64_MAX - 2)
        self.assertEqual(counter.next_id(), U64_MAX - 1)
        with self.assertRaises(StorageFailureException):
            counter.next_id()

    def test_concurrent_next_id_unique(self):
        counter = IdCounter(self.region)
        barrier = threading.Barrier(8)

        def mint(_):
            barrier.wait()
            return [counter.next_id() for _ in range(25)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = [i for batch in pool.map(mint, range(8)) for i in batch]

        self.assertEqual(len(ids), 200)
        self.assertEqual(sorted(ids), list(range(200)))
        self.assertEqual(counter.current(), 200)


if __name__ == '__main__':
    unittest.main()

import random
import re
import threading
import unittest

from invoice_pipeline.numbering import (
    OpaqueAllocator,
    SequentialAllocator,
    build_allocator,
    format_sequential,
    parse_sequence,
)

from invoice_fixtures import TempStoreTestCase, make_document


class SequenceHelperTests(unittest.TestCase):
    def test_parse_sequence_reads_trailing_digits(self) -> None:
        self.assertEqual(parse_sequence("INV-007"), 7)
        self.assertEqual(parse_sequence("INV-1700000000123-42"), 42)
        self.assertEqual(parse_sequence("legacy"), 0)
        self.assertEqual(parse_sequence(None), 0)

    def test_format_sequential_pads_to_three_digits(self) -> None:
        self.assertEqual(format_sequential(1), "INV-001")
        self.assertEqual(format_sequential(42), "INV-042")
        self.assertEqual(format_sequential(1000), "INV-1000")


class SequentialAllocatorTests(TempStoreTestCase):
    def test_empty_store_starts_at_one(self) -> None:
        allocator = SequentialAllocator(self.store)

        self.assertEqual([allocator.allocate() for _ in range(3)], ["INV-001", "INV-002", "INV-003"])

    def test_continues_from_newest_stored_number(self) -> None:
        self.store.save(make_document("INV-006"))
        self.store.save(make_document("INV-041"))

        self.assertEqual(SequentialAllocator(self.store).allocate(), "INV-042")

    def test_unparseable_stored_number_restarts_at_one(self) -> None:
        self.store.save(make_document("legacy"))

        self.assertEqual(SequentialAllocator(self.store).allocate(), "INV-001")

    def test_concurrent_allocations_are_distinct(self) -> None:
        allocator = SequentialAllocator(self.store)
        allocated = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(5):
                number = allocator.allocate()
                with lock:
                    allocated.append(number)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(allocated), 20)
        self.assertEqual(sorted(allocated), [format_sequential(n) for n in range(1, 21)])


class OpaqueAllocatorTests(unittest.TestCase):
    def test_format_uses_epoch_millis_and_random_suffix(self) -> None:
        allocator = OpaqueAllocator(clock=lambda: 1700000000.5, rng=random.Random(7))

        number = allocator.allocate()

        match = re.fullmatch(r"INV-(\d+)-(\d{1,3})", number)
        self.assertIsNotNone(match)
        assert match is not None
        self.assertEqual(match.group(1), "1700000000500")
        self.assertLessEqual(int(match.group(2)), 999)


class BuildAllocatorTests(TempStoreTestCase):
    def test_builds_known_strategies(self) -> None:
        self.assertIsInstance(build_allocator("sequential", self.store), SequentialAllocator)
        self.assertIsInstance(build_allocator("opaque", self.store), OpaqueAllocator)

    def test_rejects_unknown_strategy(self) -> None:
        with self.assertRaises(ValueError):
            build_allocator("uuid", self.store)


if __name__ == "__main__":
    unittest.main()

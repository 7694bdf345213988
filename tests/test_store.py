#!/usr/bin/env python3
"""
Unit tests for the in-memory channel store and edit store.
"""

import unittest
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from navfusion.store import MemoryChannelStore
from navfusion.edits import MemoryEditStore, PointOverride, BulkRemove
from navfusion.errors import SourceError

class TestMemoryChannelStore(unittest.TestCase):
    """Test MemoryChannelStore."""

    def setUp(self):
        self.store = MemoryChannelStore()
        self.store.create_channel("gnss", first_index=10)
        for time in (100, 200, 300, 400):
            self.store.append("gnss", time, f"record {time}")

    def test_data_range(self):
        self.assertEqual(self.store.get_data_range("gnss"), (10, 13))
        self.assertIsNone(self.store.get_data_range("unknown"))

    def test_get_record(self):
        self.assertEqual(self.store.get_record("gnss", 11), (200, b"record 200"))
        self.assertIsNone(self.store.get_record("gnss", 9))
        self.assertIsNone(self.store.get_record("gnss", 14))

    def test_find_by_time(self):
        self.assertEqual(self.store.find_by_time("gnss", 200), (11, 11))
        self.assertEqual(self.store.find_by_time("gnss", 250), (11, 12))
        self.assertEqual(self.store.find_by_time("gnss", 100), (10, 10))
        self.assertEqual(self.store.find_by_time("gnss", 400), (13, 13))
        self.assertIsNone(self.store.find_by_time("gnss", 99))
        self.assertIsNone(self.store.find_by_time("gnss", 401))

    def test_close(self):
        self.assertTrue(self.store.is_writable("gnss"))
        self.store.close("gnss")
        self.assertFalse(self.store.is_writable("gnss"))

        with self.assertRaises(SourceError):
            self.store.append("gnss", 500, b"late")

    def test_time_order_enforced(self):
        with self.assertRaises(ValueError):
            self.store.append("gnss", 50, b"early")

    def test_duplicate_channel(self):
        with self.assertRaises(SourceError):
            self.store.create_channel("gnss")

    def test_extend_creates_channel(self):
        count = self.store.extend("depth", [(1, b"a"), (2, b"b")])
        self.assertEqual(count, 2)
        self.assertEqual(self.store.get_data_range("depth"), (0, 1))
        self.assertIn("depth", self.store.channels())

class TestMemoryEditStore(unittest.TestCase):
    """Test MemoryEditStore."""

    def test_add_and_remove(self):
        edits = MemoryEditStore()
        self.assertEqual(edits.mod_count(), 0)

        remove_id = edits.add(BulkRemove(10, 20))
        edits.add(PointOverride(30, 30, 48.0, 11.0))
        self.assertEqual(edits.mod_count(), 2)
        self.assertEqual(len(edits.directives()), 2)

        self.assertTrue(edits.remove(remove_id))
        self.assertFalse(edits.remove(remove_id))
        self.assertEqual(edits.mod_count(), 3)
        self.assertEqual(edits.directives(), [PointOverride(30, 30, 48.0, 11.0)])

    def test_empty_range_rejected(self):
        with self.assertRaises(ValueError):
            MemoryEditStore().add(BulkRemove(20, 10))

    def test_covers(self):
        directive = BulkRemove(10, 20)
        self.assertTrue(directive.covers(10))
        self.assertTrue(directive.covers(20))
        self.assertFalse(directive.covers(21))

if __name__ == '__main__':
    unittest.main(verbosity=2)

"""
Unit tests for the sorted positions list.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from errors import DuplicateId, InvalidSize, ListFull, NotFound, ZeroId, ZeroMetric
from sorted_positions import SortedPositions


class TestSortedPositions(unittest.TestCase):
    def setUp(self):
        self.list = SortedPositions(max_size=10)

    def fill(self, entries):
        for id, nicr in entries:
            prev_id, next_id = self.list.find_insert_position(nicr)
            self.list.insert(id, nicr, prev_id, next_id)

    def test_insert_keeps_descending_order(self):
        self.fill([("a", 300), ("b", 100), ("c", 200), ("d", 400)])

        self.assertEqual(list(self.list), ["d", "a", "c", "b"])
        self.assertEqual(self.list.get_first(), "d")
        self.assertEqual(self.list.get_last(), "b")
        self.assertEqual(self.list.get_next("a"), "c")
        self.assertEqual(self.list.get_prev("a"), "d")
        self.assertIsNone(self.list.get_prev("d"))
        self.assertIsNone(self.list.get_next("b"))
        self.assertEqual(self.list.get_size(), 4)
        self.assertEqual(len(self.list), 4)

    def test_insert_without_hints_walks_from_head(self):
        for id, nicr in [("a", 300), ("b", 100), ("c", 200)]:
            self.list.insert(id, nicr)
        self.assertEqual(list(self.list), ["a", "c", "b"])

    def test_insert_with_wrong_hints(self):
        self.fill([("a", 500), ("b", 400), ("c", 300), ("d", 200), ("e", 100)])

        # Hints bracketing the wrong slot
        self.list.insert("x", 250, "a", "b")
        self.assertEqual(self.list.get_prev("x"), "c")
        self.assertEqual(self.list.get_next("x"), "d")

        # Hints that are not in the list
        self.list.insert("y", 450, "ghost", "phantom")
        self.assertEqual(self.list.get_prev("y"), "a")
        self.assertEqual(self.list.get_next("y"), "b")

        # Only a lower hint, far from the slot
        self.list.insert("z", 600, None, "e")
        self.assertEqual(self.list.get_first(), "z")

    def test_equal_nicr_inserted_after_existing(self):
        self.fill([("a", 100)])
        self.list.insert("b", 100, "a", None)
        self.assertEqual(list(self.list), ["a", "b"])

    def test_find_insert_position_ascends_to_tail(self):
        self.fill([("alice", 1)])
        self.assertEqual(self.list.find_insert_position(1, None, "alice"), ("alice", None))

    def test_find_insert_position_on_empty_list(self):
        self.assertEqual(self.list.find_insert_position(100), (None, None))

    def test_find_insert_position_does_not_modify(self):
        self.fill([("a", 300), ("b", 100)])
        self.assertEqual(self.list.find_insert_position(200), ("a", "b"))
        self.assertEqual(self.list.find_insert_position(400), (None, "a"))
        self.assertEqual(self.list.find_insert_position(50), ("b", None))
        self.assertEqual(list(self.list), ["a", "b"])

    def test_valid_insert_position(self):
        self.fill([("a", 300), ("b", 100)])
        self.assertTrue(self.list.valid_insert_position(200, "a", "b"))
        self.assertTrue(self.list.valid_insert_position(400, None, "a"))
        self.assertTrue(self.list.valid_insert_position(50, "b", None))
        self.assertFalse(self.list.valid_insert_position(400, "a", "b"))
        self.assertFalse(self.list.valid_insert_position(200, None, None))
        self.assertFalse(self.list.valid_insert_position(200, "b", "a"))

    def test_remove_head_middle_tail(self):
        self.fill([("a", 300), ("b", 200), ("c", 100), ("d", 50)])

        self.list.remove("b")
        self.assertEqual(list(self.list), ["a", "c", "d"])
        self.list.remove("a")
        self.assertEqual(self.list.get_first(), "c")
        self.assertIsNone(self.list.get_prev("c"))
        self.list.remove("d")
        self.assertEqual(self.list.get_last(), "c")
        self.list.remove("c")
        self.assertTrue(self.list.is_empty())
        self.assertIsNone(self.list.get_first())
        self.assertIsNone(self.list.get_last())

    def test_re_insert_moves_node(self):
        self.fill([("a", 300), ("b", 200), ("c", 100)])

        self.list.re_insert("c", 400)
        self.assertEqual(list(self.list), ["c", "a", "b"])
        self.list.re_insert("c", 150, "a", "b")
        self.assertEqual(list(self.list), ["a", "c", "b"])

    def test_nicr_lookup_overrides_stored_value(self):
        current = {"a": 300, "b": 100}
        lst = SortedPositions(max_size=10, nicr_lookup=current.get)
        lst.insert("a", 300)
        lst.insert("b", 100)

        # Pending rewards changed the live NICR of a and b in the same proportion
        current["a"] = 150
        current["b"] = 50
        self.assertEqual(lst.find_insert_position(200), (None, "a"))

    def test_contains_and_capacity(self):
        small = SortedPositions(max_size=2)
        small.insert("a", 10)
        self.assertTrue(small.contains("a"))
        self.assertFalse(small.contains("b"))
        self.assertFalse(small.is_full())
        small.insert("b", 5)
        self.assertTrue(small.is_full())
        self.assertEqual(small.get_max_size(), 2)

    def test_invalid_size(self):
        with self.assertRaises(InvalidSize):
            SortedPositions(max_size=0)

    def test_insert_when_full(self):
        small = SortedPositions(max_size=1)
        small.insert("a", 10)
        with self.assertRaises(ListFull):
            small.insert("b", 5)

    def test_insert_duplicate(self):
        self.fill([("a", 10)])
        with self.assertRaises(DuplicateId):
            self.list.insert("a", 20)

    def test_insert_zero_id(self):
        with self.assertRaises(ZeroId):
            self.list.insert(None, 10)
        with self.assertRaises(ZeroId):
            self.list.insert("", 10)

    def test_insert_zero_nicr(self):
        with self.assertRaises(ZeroMetric):
            self.list.insert("a", 0)

    def test_remove_missing(self):
        with self.assertRaises(NotFound):
            self.list.remove("a")

    def test_re_insert_errors(self):
        with self.assertRaises(NotFound):
            self.list.re_insert("a", 10)
        self.fill([("a", 10)])
        with self.assertRaises(ZeroMetric):
            self.list.re_insert("a", 0)
        # The failed call left the node in place
        self.assertTrue(self.list.contains("a"))


if __name__ == "__main__":
    unittest.main()

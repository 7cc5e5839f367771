# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ...cache import InMemoryCache
from ...interpreter.partitioning import partition_queries, partition_query
from ...program import Batch, Single
from ..in_memory_test_sources import InMemoryTestSource


class PartitioningTests(unittest.TestCase):
    def setUp(self) -> None:
        self.data_source_a = InMemoryTestSource("dsA", {})
        self.data_source_b = InMemoryTestSource("dsB", {})
        self.cache = InMemoryCache.from_results(
            (self.data_source_a, {1: "a1", 3: "a3"}), (self.data_source_b, {1: "b1"})
        )

    def test_partition_splits_cached_and_pending_identifiers(self) -> None:
        query = Batch([4, 1, 2, 4, 3], self.data_source_a)
        query_partition = partition_query(query, self.cache)

        self.assertEqual({1: "a1", 3: "a3"}, query_partition.resolved)
        self.assertEqual((4, 2), query_partition.pending)
        self.assertFalse(query_partition.fully_resolved)
        self.assertEqual(Batch([4, 2], self.data_source_a), query_partition.remaining_query())

    def test_single_pending_identifier_becomes_single_query(self) -> None:
        query_partition = partition_query(Batch([1, 5, 5], self.data_source_a), self.cache)
        self.assertEqual(Single(5, self.data_source_a), query_partition.remaining_query())

    def test_fully_cached_query_has_no_remaining_query(self) -> None:
        query_partition = partition_query(Single(3, self.data_source_a), self.cache)
        self.assertTrue(query_partition.fully_resolved)
        self.assertEqual({3: "a3"}, query_partition.resolved)
        with self.assertRaises(AssertionError):
            query_partition.remaining_query()

    def test_group_partition_accumulates_cached_results(self) -> None:
        group_partition = partition_queries(
            [
                Batch([1, 2], self.data_source_a),
                Single(1, self.data_source_b),
                Single(3, self.data_source_a),
                Batch([7, 8], self.data_source_b),
            ],
            self.cache,
        )

        self.assertEqual(
            {
                self.data_source_a.identity(1): "a1",
                self.data_source_a.identity(3): "a3",
                self.data_source_b.identity(1): "b1",
            },
            group_partition.cached_results,
        )
        self.assertEqual(
            [Single(2, self.data_source_a), Batch([7, 8], self.data_source_b)],
            group_partition.pending_queries,
        )
        self.assertFalse(group_partition.fully_resolved)

    def test_fully_cached_group(self) -> None:
        group_partition = partition_queries(
            [Single(1, self.data_source_a), Single(1, self.data_source_b)], self.cache
        )
        self.assertTrue(group_partition.fully_resolved)
        self.assertEqual(2, len(group_partition.cached_results))

"""
Tests for the LLAH hash table.
"""

import numpy as np

from uchiya_tracker.hash_table import LlahHashTable
from uchiya_tracker.operations import LlahFeature


def make_feature(hash_code, point_id=0, invariants=(0,)):
    return LlahFeature(
        hash_code=hash_code,
        document_id=0,
        point_id=point_id,
        invariants=invariants,
        values=np.zeros(len(invariants))
    )


class TestLlahHashTable:
    """Test the arena backed hash table."""

    def test_empty(self):
        table = LlahHashTable()
        assert len(table) == 0
        assert list(table.lookup(42)) == []
        assert table.bucket_count() == 0
        assert table.largest_bucket() == 0

    def test_add_returns_arena_index(self):
        table = LlahHashTable()
        assert table.add(make_feature(5)) == 0
        assert table.add(make_feature(7)) == 1
        assert len(table) == 2
        assert table.get(1).hash_code == 7

    def test_collisions_newest_first(self):
        """Features sharing a hash code are chained, most recent first."""
        table = LlahHashTable()
        table.add(make_feature(3, point_id=0))
        table.add(make_feature(9, point_id=1))
        table.add(make_feature(3, point_id=2))
        table.add(make_feature(3, point_id=3))

        assert list(table.lookup(3)) == [3, 2, 0]
        assert [table.get(i).point_id for i in table.lookup(3)] == [3, 2, 0]
        assert list(table.lookup(9)) == [1]
        assert table.bucket_count() == 2
        assert table.largest_bucket() == 3

    def test_lookup_does_not_create_buckets(self):
        table = LlahHashTable()
        table.lookup(100)
        assert table.bucket_count() == 0

    def test_lookup_follows_later_adds(self):
        """Lookups walk the live bucket without copying it."""
        table = LlahHashTable()
        table.add(make_feature(3, point_id=0))
        table.add(make_feature(3, point_id=1))

        walk = table.lookup(3)
        assert next(walk) == 1
        assert list(walk) == [0]
        assert list(table.lookup(3)) == [1, 0]
